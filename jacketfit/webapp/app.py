"""FastAPI application factory."""

import logging
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from ..config import Settings
from ..rate_limit import FixedWindowRateLimiter
from ..tryon import TryOnGenerator
from ..utils import price_badges
from .routes import router

TEMPLATES_DIR = Path(__file__).parent / "templates"
STATIC_DIR = Path(__file__).parent / "static"

logger = logging.getLogger(__name__)


class CatalogFiles(StaticFiles):
    """Static files served from a directory that may not exist yet."""

    async def check_config(self) -> None:
        if self.directory is not None and Path(self.directory).is_dir():
            await super().check_config()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path, exc_info=exc)
    return JSONResponse({"error": str(exc)}, status_code=500)


def create_app(
    settings: Settings | None = None,
    generator: TryOnGenerator | None = None,
    rate_limiter: FixedWindowRateLimiter | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()

    if rate_limiter is None and settings.rate_limit_requests > 0:
        rate_limiter = FixedWindowRateLimiter(
            settings.rate_limit_requests,
            settings.rate_limit_window,
        )

    app = FastAPI(
        title="Jacketfit",
        description="Motorcycle jacket catalog with virtual try-on",
        version="0.1.0",
    )

    app.state.settings = settings
    # Built lazily on the first try-on so the app starts without an API key.
    app.state.generator = generator
    app.state.rate_limiter = rate_limiter
    app.state.http_transport = http_transport

    app.state.templates = Jinja2Templates(directory=TEMPLATES_DIR)
    app.state.templates.env.filters["price_badges"] = price_badges

    app.add_exception_handler(Exception, unhandled_error)

    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    app.include_router(router)

    # Harvested images are referenced as /<product id>/NN.ext, so the catalog
    # is mounted at the root after every other route. The harvest may create
    # the directory after startup.
    app.mount("/", CatalogFiles(directory=settings.catalog_dir, check_dir=False), name="catalog")

    return app


# Default app instance for uvicorn
app = create_app()
