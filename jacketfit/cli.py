#!/usr/bin/env python3
"""CLI entry point for the catalog harvester and the webapp."""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

from .config import Settings, load_product_descriptors
from .models import ProductDescriptor
from .scrapers import CatalogHarvester


def select_products(products: list[ProductDescriptor], ids: list[str]) -> list[ProductDescriptor]:
    """Pick configured products by id, keeping the order of `ids`."""
    by_id = {p.id: p for p in products}
    unknown = [i for i in ids if i not in by_id]
    if unknown:
        available = ", ".join(by_id)
        raise ValueError(f"Unknown product '{unknown[0]}'. Available: {available}")
    return [by_id[i] for i in ids]


async def run_harvest(harvester: CatalogHarvester, products: list[ProductDescriptor]) -> None:
    """Harvest products sequentially."""
    print(f"Harvesting {len(products)} product(s) into {harvester.output_dir}...")
    start = time.perf_counter()
    await harvester.harvest_all(products)
    elapsed = time.perf_counter() - start
    print(f"\nAll products harvested in {elapsed:.2f}s")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Motorcycle jacket catalog harvester",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m jacketfit.cli --all                 # Harvest every configured product
  python -m jacketfit.cli --product covelo      # Harvest a single product
  python -m jacketfit.cli --list                # List configured products
  python -m jacketfit.cli --serve --reload      # Run the webapp with auto-reload

Environment:
  PRODUCTS_FILE   products to harvest (default: the bundled jacketfit/products.json)
  CATALOG_DIR     catalog directory (default: ./public)
        """,
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--all", "-a", action="store_true", help="Harvest all configured products")
    group.add_argument("--product", "-p", action="append", metavar="ID", help="Harvest a product (repeatable)")
    group.add_argument("--list", "-l", action="store_true", help="List configured products")
    group.add_argument("--serve", action="store_true", help="Run the webapp with uvicorn")

    parser.add_argument("--products-file", type=Path, help="JSON list of {id, url} products")
    parser.add_argument("--output-dir", type=Path, help="Catalog directory (default: CATALOG_DIR)")
    parser.add_argument("--no-script-scan", action="store_true", help="Skip image URLs embedded in scripts")
    parser.add_argument(
        "--keep-width-placeholders",
        action="store_true",
        help="Do not strip _{width}x tokens from image URLs",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (with --serve)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (with --serve)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (with --serve)")

    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.serve:
        import uvicorn

        uvicorn.run(
            "jacketfit.webapp.app:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
        )
        return 0

    try:
        products = load_product_descriptors(args.products_file or settings.products_file)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.list:
        print("Configured products:")
        for p in products:
            print(f"  - {p.id}: {p.url}")
        return 0

    if args.product:
        try:
            products = select_products(products, args.product)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    harvester = CatalogHarvester(
        output_dir=args.output_dir or settings.catalog_dir,
        scan_scripts=not args.no_script_scan,
        normalize_widths=not args.keep_width_placeholders,
        timeout=settings.harvest_timeout,
    )

    try:
        asyncio.run(run_harvest(harvester, products))
    except Exception as e:
        logging.getLogger(__name__).exception("Harvest aborted")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("\n" + "=" * 60)
    print("Done!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
