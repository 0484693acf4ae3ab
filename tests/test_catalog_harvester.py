import json
import tempfile
import unittest
from pathlib import Path

import httpx

from jacketfit.models import ProductDescriptor
from jacketfit.scrapers.base import FetchError, parse_html
from jacketfit.scrapers.catalog import (
    CatalogHarvester,
    collect_image_urls,
    extract_price_text,
    extract_title,
    image_filename,
    is_product_image,
    normalize_image_url,
    strip_width_suffix,
)

PAGE_URL = "https://shop.example/de/products/blaze-air"

PRODUCT_PAGE = """
<html>
<head>
  <script>var product = {"media":["\\/\\/shop.example\\/cdn\\/shop\\/products\\/c_{width}x.webp?v=123"]};</script>
</head>
<body>
  <h1>  Blaze Air Jacket </h1>
  <div class="product__price price--sale">Angebot €199,95 Normaler Preis €249,95</div>
  <img src="//shop.example/cdn/shop/products/a_{width}x.jpg">
  <img srcset="//shop.example/cdn/shop/products/a_%7Bwidth%7Dx.jpg 400w, /cdn/shop/products/b.png 800w">
  <img src="/logo.svg">
</body>
</html>
"""


def image_page(count: int) -> str:
    imgs = "\n".join(
        f'<img src="https://shop.example/cdn/shop/products/img{i:02d}.jpg">' for i in range(count)
    )
    return f"<html><body><h1>Many</h1>{imgs}</body></html>"


class TestUrlHelpers(unittest.TestCase):
    def test_normalize_upgrades_protocol_relative(self):
        self.assertEqual(
            normalize_image_url("//shop.example/cdn/shop/products/a.jpg"),
            "https://shop.example/cdn/shop/products/a.jpg",
        )

    def test_normalize_strips_both_placeholder_encodings(self):
        raw = "https://shop.example/cdn/shop/products/a_{width}x.jpg"
        encoded = "https://shop.example/cdn/shop/products/a_%7Bwidth%7Dx.jpg"
        self.assertEqual(normalize_image_url(raw), normalize_image_url(encoded))
        self.assertEqual(normalize_image_url(raw), "https://shop.example/cdn/shop/products/a.jpg")

    def test_normalize_can_keep_placeholders(self):
        url = "https://shop.example/cdn/shop/products/a_{width}x.jpg"
        self.assertEqual(normalize_image_url(url, strip_width_placeholders=False), url)

    def test_is_product_image(self):
        self.assertTrue(is_product_image("https://x/cdn/shop/products/a.JPG?v=1"))
        self.assertTrue(is_product_image("https://x/cdn/shop/products/sub/a.webp"))
        self.assertFalse(is_product_image("https://x/cdn/shop/files/a.jpg"))
        self.assertFalse(is_product_image("https://x/cdn/shop/products/a.gif"))

    def test_strip_width_suffix(self):
        self.assertEqual(
            strip_width_suffix("https://x/cdn/shop/products/a_1065x.jpg?v=2"),
            "https://x/cdn/shop/products/a.jpg?v=2",
        )
        self.assertEqual(strip_width_suffix("https://x/cdn/shop/products/a.jpg"), "https://x/cdn/shop/products/a.jpg")

    def test_image_filename(self):
        self.assertEqual(image_filename(1, "https://x/cdn/shop/products/a.png?v=3"), "01.png")
        self.assertEqual(image_filename(12, "https://x/cdn/shop/products/a.webp"), "12.webp")
        self.assertEqual(image_filename(3, "https://x/cdn/shop/products/noext"), "03.jpg")


class TestPageExtraction(unittest.TestCase):
    def test_title_and_price(self):
        soup = parse_html(PRODUCT_PAGE)
        self.assertEqual(extract_title(soup, "blaze-air"), "Blaze Air Jacket")
        self.assertEqual(extract_price_text(soup), "Angebot €199,95 Normaler Preis €249,95")

    def test_title_falls_back_to_id_and_price_to_empty(self):
        soup = parse_html("<html><body><h1>   </h1><p>no price</p></body></html>")
        self.assertEqual(extract_title(soup, "covelo"), "covelo")
        self.assertEqual(extract_price_text(soup), "")

    def test_collects_images_from_img_srcset_and_scripts(self):
        urls = collect_image_urls(parse_html(PRODUCT_PAGE), PAGE_URL)
        self.assertEqual(
            urls,
            [
                "https://shop.example/cdn/shop/products/a.jpg",
                "https://shop.example/cdn/shop/products/b.png",
                "https://shop.example/cdn/shop/products/c.webp?v=123",
            ],
        )

    def test_script_scan_can_be_disabled(self):
        urls = collect_image_urls(parse_html(PRODUCT_PAGE), PAGE_URL, scan_scripts=False)
        self.assertNotIn("https://shop.example/cdn/shop/products/c.webp?v=123", urls)
        self.assertEqual(len(urls), 2)

    def test_data_src_used_when_src_missing(self):
        html = '<img data-src="/cdn/shop/products/lazy.jpg"><img data-original="/cdn/shop/products/old.png">'
        urls = collect_image_urls(parse_html(html), PAGE_URL)
        self.assertEqual(
            urls,
            [
                "https://shop.example/cdn/shop/products/lazy.jpg",
                "https://shop.example/cdn/shop/products/old.png",
            ],
        )

    def test_distinct_width_filenames_are_not_collapsed(self):
        html = (
            '<img src="https://cdn/shop/products/a_800x.jpg">'
            '<img srcset="https://cdn/shop/products/a_400x.jpg 400w, https://cdn/shop/products/a_800x.jpg 800w">'
        )
        urls = collect_image_urls(parse_html(html), "https://cdn/page")
        self.assertEqual(
            urls,
            ["https://cdn/shop/products/a_800x.jpg", "https://cdn/shop/products/a_400x.jpg"],
        )

    def test_placeholder_variants_collapse(self):
        html = (
            '<img src="https://cdn/shop/products/a_{width}x.jpg">'
            '<img srcset="https://cdn/shop/products/a_%7Bwidth%7Dx.jpg 400w, //cdn/shop/products/a.jpg 800w">'
        )
        urls = collect_image_urls(parse_html(html), "https://cdn/page")
        self.assertEqual(urls, ["https://cdn/shop/products/a.jpg"])

    def test_script_urls_with_version_query(self):
        html = "<script>window.media = ['//shop.example/cdn/shop/products/z_{width}x.png?v=42'];</script>"
        urls = collect_image_urls(parse_html(html), PAGE_URL)
        self.assertEqual(urls, ["https://shop.example/cdn/shop/products/z.png?v=42"])


class TestCatalogHarvester(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.output_dir = Path(self._tmp.name) / "public"
        self.requested: list[str] = []

    def tearDown(self):
        self._tmp.cleanup()

    def _client(
        self,
        pages: dict[str, str],
        missing: set[str] | None = None,
        page_status: int = 200,
        unreachable: set[str] | None = None,
    ):
        missing = missing or set()
        unreachable = unreachable or set()

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            self.requested.append(url)
            if url in pages:
                return httpx.Response(page_status, text=pages[url])
            if request.url.path in unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            if request.url.path in missing:
                return httpx.Response(404)
            return httpx.Response(200, content=f"bytes:{request.url.path}".encode())

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def test_harvest_writes_images_and_meta(self):
        async with self._client({PAGE_URL: PRODUCT_PAGE}) as client:
            harvester = CatalogHarvester(self.output_dir, client=client)
            meta = await harvester.harvest(ProductDescriptor("blaze-air", PAGE_URL))

        product_dir = self.output_dir / "blaze-air"
        self.assertEqual(meta.images, ["/blaze-air/01.jpg", "/blaze-air/02.png", "/blaze-air/03.webp"])
        self.assertEqual((product_dir / "01.jpg").read_bytes(), b"bytes:/cdn/shop/products/a.jpg")
        self.assertEqual((product_dir / "03.webp").read_bytes(), b"bytes:/cdn/shop/products/c.webp")

        stored = json.loads((product_dir / "meta.json").read_text(encoding="utf-8"))
        self.assertEqual(
            stored,
            {
                "id": "blaze-air",
                "title": "Blaze Air Jacket",
                "url": PAGE_URL,
                "priceText": "Angebot €199,95 Normaler Preis €249,95",
                "images": ["/blaze-air/01.jpg", "/blaze-air/02.png", "/blaze-air/03.webp"],
            },
        )

    async def test_downloads_are_capped_at_twelve(self):
        async with self._client({PAGE_URL: image_page(15)}) as client:
            meta = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("many", PAGE_URL)
            )

        self.assertEqual(len(meta.images), 12)
        self.assertEqual(meta.images[-1], "/many/12.jpg")
        self.assertFalse(any("img12.jpg" in u for u in self.requested))
        files = sorted(p.name for p in (self.output_dir / "many").iterdir())
        self.assertEqual(files, [f"{i:02d}.jpg" for i in range(1, 13)] + ["meta.json"])

    async def test_fewer_candidates_than_cap_downloads_all(self):
        async with self._client({PAGE_URL: image_page(4)}) as client:
            meta = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("few", PAGE_URL)
            )
        self.assertEqual(len(meta.images), 4)

    async def test_rerun_produces_same_filenames_when_order_changes(self):
        first_page = image_page(3)
        imgs = first_page.split("<h1>Many</h1>")[1].split("</body>")[0].split("\n")
        second_page = "<html><body><h1>Many</h1>" + "\n".join(reversed(imgs)) + "</body></html>"

        async with self._client({PAGE_URL: first_page}) as client:
            first = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("stable", PAGE_URL)
            )
        async with self._client({PAGE_URL: second_page}) as client:
            second = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("stable", PAGE_URL)
            )

        self.assertEqual(first.images, second.images)
        self.assertEqual(
            (self.output_dir / "stable" / "01.jpg").read_bytes(),
            b"bytes:/cdn/shop/products/img02.jpg",
        )

    async def test_failed_download_retries_without_width_suffix(self):
        page = '<html><body><h1>T</h1><img src="https://shop.example/cdn/shop/products/d_800x.jpg"></body></html>'
        async with self._client({PAGE_URL: page}, missing={"/cdn/shop/products/d_800x.jpg"}) as client:
            meta = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("fallback", PAGE_URL)
            )

        self.assertEqual(meta.images, ["/fallback/01.jpg"])
        self.assertEqual(
            (self.output_dir / "fallback" / "01.jpg").read_bytes(),
            b"bytes:/cdn/shop/products/d.jpg",
        )

    async def test_connect_error_retries_without_width_suffix(self):
        page = '<html><body><h1>T</h1><img src="https://shop.example/cdn/shop/products/d_800x.jpg"></body></html>'
        async with self._client({PAGE_URL: page}, unreachable={"/cdn/shop/products/d_800x.jpg"}) as client:
            meta = await CatalogHarvester(self.output_dir, client=client).harvest(
                ProductDescriptor("offline", PAGE_URL)
            )

        self.assertEqual(meta.images, ["/offline/01.jpg"])
        self.assertIn("https://shop.example/cdn/shop/products/d.jpg", self.requested)
        self.assertEqual(
            (self.output_dir / "offline" / "01.jpg").read_bytes(),
            b"bytes:/cdn/shop/products/d.jpg",
        )

    async def test_failed_fallback_aborts_without_meta(self):
        page = '<html><body><h1>T</h1><img src="https://shop.example/cdn/shop/products/d_800x.jpg"></body></html>'
        missing = {"/cdn/shop/products/d_800x.jpg", "/cdn/shop/products/d.jpg"}
        async with self._client({PAGE_URL: page}, missing=missing) as client:
            with self.assertRaises(FetchError) as ctx:
                await CatalogHarvester(self.output_dir, client=client).harvest(
                    ProductDescriptor("broken", PAGE_URL)
                )

        self.assertEqual(ctx.exception.status, 404)
        self.assertTrue((self.output_dir / "broken").is_dir())
        self.assertFalse((self.output_dir / "broken" / "meta.json").exists())

    async def test_page_fetch_failure_raises_fetch_error(self):
        async with self._client({PAGE_URL: "down"}, page_status=503) as client:
            with self.assertRaises(FetchError) as ctx:
                await CatalogHarvester(self.output_dir, client=client).harvest(
                    ProductDescriptor("down", PAGE_URL)
                )
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.url, PAGE_URL)

    async def test_harvest_all_stops_at_first_failure(self):
        other_url = "https://shop.example/de/products/other"
        pages = {PAGE_URL: image_page(1)}

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            if url == other_url:
                return httpx.Response(500)
            if url in pages:
                return httpx.Response(200, text=pages[url])
            return httpx.Response(200, content=b"img")

        products = [
            ProductDescriptor("first", PAGE_URL),
            ProductDescriptor("second", other_url),
            ProductDescriptor("third", PAGE_URL),
        ]
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(FetchError):
                await CatalogHarvester(self.output_dir, client=client).harvest_all(products)

        self.assertTrue((self.output_dir / "first" / "meta.json").exists())
        self.assertFalse((self.output_dir / "third").exists())
