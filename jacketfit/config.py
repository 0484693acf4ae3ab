"""Runtime configuration loaded from the environment and the products file."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from dotenv import load_dotenv

from .models import ProductDescriptor

load_dotenv()

PACKAGE_DIR = Path(__file__).resolve().parent

DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass
class Settings:
    """Application settings."""

    gemini_api_key: str | None = None
    gemini_image_model: str = DEFAULT_IMAGE_MODEL
    # The catalog lives under the working directory; the product list ships
    # with the package.
    catalog_dir: Path = field(default_factory=lambda: Path.cwd() / "public")
    products_file: Path = PACKAGE_DIR / "products.json"

    # Fixed-window limiter for the try-on endpoint; 0 disables it.
    rate_limit_requests: int = 0
    rate_limit_window: int = 60

    tryon_max_dimension: int = 1024
    tryon_retry_delay: float = 20.0

    # None means no timeout at all.
    harvest_timeout: float | None = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables (and `.env`)."""
        defaults = cls()
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
            catalog_dir=Path(os.getenv("CATALOG_DIR") or defaults.catalog_dir),
            products_file=Path(os.getenv("PRODUCTS_FILE") or defaults.products_file),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", defaults.rate_limit_requests),
            rate_limit_window=_env_int("RATE_LIMIT_WINDOW", defaults.rate_limit_window),
            tryon_max_dimension=_env_int("TRYON_MAX_DIMENSION", defaults.tryon_max_dimension),
            tryon_retry_delay=_env_float("TRYON_RETRY_DELAY", defaults.tryon_retry_delay),
            harvest_timeout=_env_float("HARVEST_TIMEOUT", None),
            log_level=(os.getenv("LOG_LEVEL") or defaults.log_level).upper(),
        )


def load_product_descriptors(path: Path) -> list[ProductDescriptor]:
    """Load the ordered list of products to harvest.

    The file holds a JSON array of ``{"id": ..., "url": ...}`` objects.
    Ids must be unique and usable as a directory name; urls must be
    absolute http(s).
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of products")

    products: list[ProductDescriptor] = []
    seen: set[str] = set()
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: entry {idx} is not an object")

        product_id = str(entry.get("id") or "").strip()
        url = str(entry.get("url") or "").strip()

        if not product_id:
            raise ValueError(f"{path}: entry {idx} has no id")
        if "/" in product_id or "\\" in product_id or product_id.startswith("."):
            raise ValueError(f"{path}: invalid product id '{product_id}'")
        if product_id in seen:
            raise ValueError(f"{path}: duplicate product id '{product_id}'")

        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"{path}: product '{product_id}' needs an absolute http(s) url")

        seen.add(product_id)
        products.append(ProductDescriptor(id=product_id, url=url))

    return products
