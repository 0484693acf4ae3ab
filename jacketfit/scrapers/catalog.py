"""Catalog harvester for Shopify-hosted product pages.

Each configured product page is fetched, its title, price text and product
images are extracted, and the images are written as numbered files next to a
``meta.json`` record::

    <output_dir>/<product id>/01.jpg
    <output_dir>/<product id>/02.webp
    <output_dir>/<product id>/meta.json

Image URLs are collected from ``<img>`` sources, ``srcset`` candidates and
URLs embedded in inline scripts. Shopify serves the same picture under many
URLs (``_{width}x`` templates, ``_800x`` resized variants); the template
tokens are stripped before de-duplication and the resized form is used as a
download fallback.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ..models import ProductDescriptor, ProductMeta
from .base import (
    FetchError,
    fetch_bytes,
    fetch_html,
    img_source,
    make_client,
    parse_html,
    srcset_urls,
)

logger = logging.getLogger(__name__)

MAX_IMAGES = 12

PRICE_SELECTOR = "[class*='price'], .price, .product__price"

PRODUCT_IMAGE_RE = re.compile(r"cdn/shop/products/.+\.(jpg|jpeg|png|webp)", re.IGNORECASE)
SCRIPT_IMAGE_RE = re.compile(
    r"(https?:)?//[^\"'\s]+cdn/shop/products/[^\"'\s]+\.(?:jpg|jpeg|png|webp)(?:\?v=\d+)?",
    re.IGNORECASE,
)
WIDTH_PLACEHOLDER_RE = re.compile(r"_(?:%7Bwidth%7D|\{width\})x", re.IGNORECASE)
WIDTH_SUFFIX_RE = re.compile(r"_(\d+)x(\.(?:jpg|jpeg|png|webp))", re.IGNORECASE)


def normalize_image_url(url: str, strip_width_placeholders: bool = True) -> str:
    """Canonicalize a CDN image URL.

    Protocol-relative URLs get ``https:``; the ``_{width}x`` template token
    (raw or percent-encoded) is removed.
    """
    if url.startswith("//"):
        url = "https:" + url
    if strip_width_placeholders:
        url = WIDTH_PLACEHOLDER_RE.sub("", url)
    return url


def is_product_image(url: str) -> bool:
    return bool(PRODUCT_IMAGE_RE.search(url))


def strip_width_suffix(url: str) -> str:
    """Drop an explicit ``_<width>x`` resize suffix before the extension."""
    return WIDTH_SUFFIX_RE.sub(r"\2", url, count=1)


def image_filename(index: int, url: str) -> str:
    """Two-digit, 1-based filename keeping the URL's extension."""
    ext = PurePosixPath(urlparse(url).path).suffix or ".jpg"
    return f"{index:02d}{ext}"


def extract_title(soup: BeautifulSoup, fallback: str) -> str:
    h1 = soup.find("h1")
    title = h1.get_text().strip() if h1 else ""
    return title or fallback


def extract_price_text(soup: BeautifulSoup) -> str:
    el = soup.select_one(PRICE_SELECTOR)
    return el.get_text().strip() if el else ""


def collect_image_urls(
    soup: BeautifulSoup,
    page_url: str,
    scan_scripts: bool = True,
    normalize_widths: bool = True,
) -> list[str]:
    """Collect product image URLs in discovery order, without duplicates."""
    found: dict[str, None] = {}

    def add(candidate: str) -> None:
        url = normalize_image_url(candidate, normalize_widths)
        if is_product_image(url):
            found.setdefault(url, None)

    for img in soup.find_all("img"):
        if src := img_source(img):
            add(urljoin(page_url, src))
        for part in srcset_urls(img.get("srcset")):
            add(urljoin(page_url, part))

    if scan_scripts:
        for script in soup.find_all("script"):
            # JSON blobs escape their slashes.
            text = script.get_text().replace("\\/", "/")
            for match in SCRIPT_IMAGE_RE.finditer(text):
                add(match.group(0))

    return list(found)


class CatalogHarvester:
    """Scrape product pages into a local image + metadata tree."""

    def __init__(
        self,
        output_dir: Path,
        client: httpx.AsyncClient | None = None,
        max_images: int = MAX_IMAGES,
        scan_scripts: bool = True,
        normalize_widths: bool = True,
        timeout: float | None = None,
    ):
        self.output_dir = Path(output_dir)
        self.max_images = max_images
        self.scan_scripts = scan_scripts
        self.normalize_widths = normalize_widths
        self.timeout = timeout
        self._client = client

    async def harvest(self, product: ProductDescriptor) -> ProductMeta:
        """Harvest a single product."""
        if self._client is not None:
            return await self._harvest(self._client, product)
        async with make_client(self.timeout) as client:
            return await self._harvest(client, product)

    async def harvest_all(self, products: Iterable[ProductDescriptor]) -> list[ProductMeta]:
        """Harvest products one after another; the first failure aborts the run."""
        if self._client is not None:
            return [await self._harvest(self._client, p) for p in products]
        async with make_client(self.timeout) as client:
            return [await self._harvest(client, p) for p in products]

    async def _harvest(self, client: httpx.AsyncClient, product: ProductDescriptor) -> ProductMeta:
        if not product.url:
            raise ValueError(f"Product '{product.id}' has no url")

        logger.info("Fetching %s (%s)", product.id, product.url)
        html = await fetch_html(client, product.url)
        soup = parse_html(html)

        title = extract_title(soup, product.id)
        price_text = extract_price_text(soup)
        candidates = collect_image_urls(
            soup,
            product.url,
            scan_scripts=self.scan_scripts,
            normalize_widths=self.normalize_widths,
        )
        logger.debug("%s: %d image candidates", product.id, len(candidates))

        product_dir = self.output_dir / product.id
        product_dir.mkdir(parents=True, exist_ok=True)

        images: list[str] = []
        for src in candidates:
            if len(images) >= self.max_images:
                break
            filename = image_filename(len(images) + 1, src)
            await self._download_with_fallback(client, src, product_dir / filename)
            images.append(f"/{product.id}/{filename}")

        meta = ProductMeta(
            id=product.id,
            title=title,
            url=product.url,
            price_text=price_text,
            images=images,
        )
        (product_dir / "meta.json").write_text(
            json.dumps(meta.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

        print(f"Saved {product.id}: {len(images)} images")
        logger.info("Saved %s: %d images to %s", product.id, len(images), product_dir)
        return meta

    async def _download_with_fallback(self, client: httpx.AsyncClient, url: str, out_path: Path) -> None:
        try:
            await self._download(client, url, out_path)
        except (FetchError, httpx.HTTPError) as e:
            fallback = strip_width_suffix(url)
            logger.warning("Download failed for %s (%s), retrying %s", url, e, fallback)
            await self._download(client, fallback, out_path)

    @staticmethod
    async def _download(client: httpx.AsyncClient, url: str, out_path: Path) -> None:
        resp = await fetch_bytes(client, url)
        out_path.write_bytes(resp.content)
