"""FastAPI routes for the webapp."""

import logging

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..catalog import list_products, resolve_catalog_path
from ..config import Settings
from ..rate_limit import client_ip
from ..scrapers import FetchError, is_http_url, scrape_page_images
from ..scrapers.base import make_client
from ..tryon import TryOnGenerator, build_generator, downscale_image

logger = logging.getLogger(__name__)

router = APIRouter()


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    return request.app.state.settings


def templates(request: Request):
    """Get templates instance from app state."""
    return request.app.state.templates


def get_generator(request: Request) -> TryOnGenerator:
    if request.app.state.generator is None:
        request.app.state.generator = build_generator(get_settings(request))
    return request.app.state.generator


def http_client(request: Request):
    return make_client(timeout=60.0, transport=request.app.state.http_transport)


def error_response(message: str, status_code: int, headers: dict | None = None) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code, headers=headers)


# --- Page ---


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    """Catalog page with the try-on controls."""
    products = list_products(get_settings(request).catalog_dir)
    return templates(request).TemplateResponse(
        request,
        "index.html",
        {"products": products},
    )


# --- API ---


@router.get("/api/products")
async def products_list(request: Request):
    """List the harvested products."""
    try:
        return {"products": list_products(get_settings(request).catalog_dir)}
    except Exception as e:
        logger.exception("Failed to list products")
        return error_response(str(e), 500)


@router.get("/api/scrape")
async def scrape_images(request: Request, url: str | None = Query(default=None)):
    """List the images found on an arbitrary page."""
    if not is_http_url(url):
        return error_response("Provide ?url", 400)

    try:
        async with http_client(request) as client:
            images = await scrape_page_images(url, client=client)
    except FetchError as e:
        return error_response(f"Fetch failed {e.status}", 400)
    except Exception as e:
        logger.exception("Scrape of %s failed", url)
        return error_response(str(e), 500)

    return {"images": images}


@router.post("/api/vton")
async def virtual_try_on(request: Request):
    """Compose the uploaded person photo with a product image."""
    limiter = request.app.state.rate_limiter
    if limiter is not None:
        decision = limiter.hit(client_ip(request))
        if not decision.allowed:
            return error_response(
                "Too many requests, please try again later",
                429,
                headers={"retry-after": str(decision.retry_after)},
            )

    settings = get_settings(request)
    try:
        content_type = request.headers.get("content-type", "")
        if "multipart/form-data" not in content_type:
            return error_response("Expected multipart/form-data", 400)

        form = await request.form()
        person = form.get("person")
        product_url = form.get("productUrl")
        if not isinstance(person, UploadFile) or not isinstance(product_url, str) or not product_url.strip():
            return error_response("Missing person image or productUrl", 400)
        product_url = product_url.strip()

        if product_url.startswith("/"):
            try:
                product_path = resolve_catalog_path(settings.catalog_dir, product_url)
            except ValueError as e:
                return error_response(str(e), 400)
            if not product_path.is_file():
                return error_response(f"Product image not found: {product_url}", 400)
            product_bytes = await run_in_threadpool(product_path.read_bytes)
        elif is_http_url(product_url):
            async with http_client(request) as client:
                resp = await client.get(product_url)
            if not resp.is_success:
                return error_response(f"Failed to fetch product image: {resp.status_code}", 400)
            product_bytes = resp.content
        else:
            return error_response("productUrl must be a site path or an http(s) URL", 400)

        person_bytes = await person.read()
        person_jpeg = await run_in_threadpool(downscale_image, person_bytes, settings.tryon_max_dimension)
        product_jpeg = await run_in_threadpool(downscale_image, product_bytes, settings.tryon_max_dimension)

        image = await get_generator(request).generate(person_jpeg, product_jpeg)
    except Exception as e:
        logger.exception("Try-on failed")
        return error_response(str(e), 500)

    return Response(
        content=image,
        media_type="image/png",
        headers={"cache-control": "no-store"},
    )
