"""Scrapers for the product catalog and arbitrary pages."""

from __future__ import annotations

from .base import FetchError
from .catalog import CatalogHarvester
from .page_images import is_http_url, scrape_page_images

__all__ = [
    "CatalogHarvester",
    "FetchError",
    "is_http_url",
    "scrape_page_images",
]
