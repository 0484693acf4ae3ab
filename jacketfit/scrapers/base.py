"""Shared HTTP and HTML helpers for the scrapers."""

from __future__ import annotations

from collections.abc import Iterator
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

DEFAULT_HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "de-DE,de;q=0.9,en-US;q=0.8,en;q=0.7",
}

# Attributes checked, in order, for an <img>'s primary source.
IMG_SOURCE_ATTRS = ("src", "data-src", "data-original")


class FetchError(Exception):
    """A page or image request returned a non-success status."""

    def __init__(self, url: str, status: int):
        self.url = url
        self.status = status
        super().__init__(f"Failed to fetch {url} ({status})")


def make_client(timeout: float | None = None, **kwargs) -> httpx.AsyncClient:
    """Create an async client with browser-like headers."""
    return httpx.AsyncClient(
        headers=DEFAULT_HEADERS,
        follow_redirects=True,
        timeout=httpx.Timeout(timeout),
        **kwargs,
    )


async def fetch_html(client: httpx.AsyncClient, url: str) -> str:
    resp = await client.get(url)
    if not resp.is_success:
        raise FetchError(url, resp.status_code)
    return resp.text


async def fetch_bytes(client: httpx.AsyncClient, url: str) -> httpx.Response:
    resp = await client.get(url)
    if not resp.is_success:
        raise FetchError(url, resp.status_code)
    return resp


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def img_source(img) -> str | None:
    """Return the first non-empty source attribute of an <img> tag."""
    for attr in IMG_SOURCE_ATTRS:
        value = img.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def srcset_urls(srcset: str | None) -> list[str]:
    """Split a srcset attribute into its candidate URLs."""
    if not srcset or not isinstance(srcset, str):
        return []
    urls = []
    for candidate in srcset.split(","):
        parts = candidate.strip().split()
        if parts:
            urls.append(parts[0])
    return urls


def iter_img_sources(soup: BeautifulSoup, page_url: str) -> Iterator[str]:
    """Yield every <img> primary source resolved against the page URL."""
    for img in soup.find_all("img"):
        if src := img_source(img):
            yield urljoin(page_url, src)
