"""Read-through access to the harvested catalog on disk."""

from __future__ import annotations

import json
from pathlib import Path

from .models import ProductMeta

META_FILENAME = "meta.json"


def list_products(base_dir: Path) -> list[dict]:
    """List every product directory under `base_dir`.

    Directories without a metadata file get a placeholder record. A missing
    base directory is an empty catalog.
    """
    base_dir = Path(base_dir)
    if not base_dir.is_dir():
        return []

    products: list[dict] = []
    for product_dir in sorted(p for p in base_dir.iterdir() if p.is_dir()):
        meta_path = product_dir / META_FILENAME
        if meta_path.exists():
            products.append(json.loads(meta_path.read_text(encoding="utf-8")))
        else:
            products.append(ProductMeta.placeholder(product_dir.name).to_dict())
    return products


def resolve_catalog_path(base_dir: Path, site_path: str) -> Path:
    """Map a site-relative path like ``/covelo/01.jpg`` to a file in `base_dir`."""
    root = Path(base_dir).resolve()
    target = (root / site_path.lstrip("/")).resolve()
    if target == root or not target.is_relative_to(root):
        raise ValueError(f"Path escapes the catalog: {site_path}")
    return target
