"""Generic image scrape for an arbitrary page."""

from __future__ import annotations

import re

import httpx

from .base import fetch_html, iter_img_sources, make_client, parse_html

MAX_PAGE_IMAGES = 48

IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|webp)(\?|$)", re.IGNORECASE)
HTTP_URL_RE = re.compile(r"^https?://")


def is_http_url(url: str | None) -> bool:
    return bool(url) and bool(HTTP_URL_RE.match(url))


def extract_page_images(html: str, page_url: str, limit: int = MAX_PAGE_IMAGES) -> list[str]:
    """Return up to `limit` unique absolute image URLs found in <img> tags."""
    found: dict[str, None] = {}
    for url in iter_img_sources(parse_html(html), page_url):
        if IMAGE_EXT_RE.search(url):
            found.setdefault(url, None)
    return list(found)[:limit]


async def scrape_page_images(
    url: str,
    client: httpx.AsyncClient | None = None,
    limit: int = MAX_PAGE_IMAGES,
) -> list[str]:
    """Fetch `url` and list the images on it.

    Raises `FetchError` when the page does not return a success status.
    """
    if client is not None:
        html = await fetch_html(client, url)
    else:
        async with make_client(timeout=60.0) as own_client:
            html = await fetch_html(own_client, url)
    return extract_page_images(html, url, limit=limit)
