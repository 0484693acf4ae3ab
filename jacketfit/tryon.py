"""Virtual try-on through a Gemini image model."""

from __future__ import annotations

import asyncio
import base64
import logging
import re
from collections.abc import Awaitable, Callable
from io import BytesIO
from typing import Any

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from PIL import Image

from .config import Settings

logger = logging.getLogger(__name__)

TRYON_PROMPT = (
    "Compose a realistic virtual try-on: put the garment from the second image onto the person in the first image. "
    "Maintain natural body shape, lighting, and pose. Seamlessly align edges, avoid artifacts, and keep background intact. "
    "Return only the final composited photo."
)

DEFAULT_RETRY_DELAY = 20.0
JPEG_QUALITY = 90


class TryOnError(Exception):
    """The try-on image could not be produced."""


def downscale_image(data: bytes, max_dimension: int = 1024) -> bytes:
    """Fit an image inside a `max_dimension` square and re-encode it as JPEG."""
    with Image.open(BytesIO(data)) as img:
        resample = Image.Resampling.LANCZOS if hasattr(Image, "Resampling") else Image.LANCZOS
        rgb = img.convert("RGB")
        rgb.thumbnail((max_dimension, max_dimension), resample)
        out = BytesIO()
        rgb.save(out, format="JPEG", quality=JPEG_QUALITY)
        return out.getvalue()


def _parse_delay(value: Any) -> float | None:
    if value is None:
        return None
    if hasattr(value, "seconds"):
        return float(value.seconds)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if match := re.match(r"\s*(\d+)", str(value)):
        return float(match.group(1))
    return None


def retry_delay_seconds(exc: Exception, default: float = DEFAULT_RETRY_DELAY) -> float:
    """Read the provider's advised retry delay from a rate-limit error.

    Details may be `RetryInfo` protobuf messages or their JSON form
    (``{"@type": "...RetryInfo", "retryDelay": "17s"}``). Only whole seconds
    are honoured.
    """
    for detail in getattr(exc, "details", None) or []:
        if isinstance(detail, dict):
            if "RetryInfo" not in str(detail.get("@type", "")):
                continue
            delay = _parse_delay(detail.get("retryDelay"))
        elif hasattr(detail, "retry_delay"):
            delay = _parse_delay(detail.retry_delay)
        else:
            continue
        if delay is not None:
            return delay
    return default


def _first_image(response: Any) -> bytes | None:
    for part in _parts(response):
        inline = getattr(part, "inline_data", None)
        data = getattr(inline, "data", None) if inline is not None else None
        if not data:
            continue
        if isinstance(data, str):
            return base64.b64decode(data)
        return bytes(data)
    return None


def _parts(response: Any) -> list:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


class TryOnGenerator:
    """Send a person photo and a garment photo to the image model."""

    def __init__(
        self,
        model: Any,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.model = model
        self.retry_delay = retry_delay
        self._sleep = sleep

    async def _generate_once(self, person_jpeg: bytes, product_jpeg: bytes) -> Any:
        return await self.model.generate_content_async(
            [
                TRYON_PROMPT,
                {"mime_type": "image/jpeg", "data": person_jpeg},
                {"mime_type": "image/jpeg", "data": product_jpeg},
            ]
        )

    async def generate(self, person_jpeg: bytes, product_jpeg: bytes) -> bytes:
        """Return the composited image bytes.

        A rate-limit error on the first attempt is retried exactly once after
        the advised delay; the second attempt's outcome is final.
        """
        try:
            response = await self._generate_once(person_jpeg, product_jpeg)
        except google_exceptions.ResourceExhausted as e:
            delay = retry_delay_seconds(e, self.retry_delay)
            logger.warning("Image model rate limited, retrying in %.0fs", delay)
            await self._sleep(delay)
            response = await self._generate_once(person_jpeg, product_jpeg)

        if (image := _first_image(response)) is not None:
            return image

        text = " ".join(
            t for t in (getattr(p, "text", None) for p in _parts(response)) if t
        )
        raise TryOnError(text or "No image returned")


def build_generator(settings: Settings) -> TryOnGenerator:
    """Create a generator backed by the configured Gemini model."""
    if not settings.gemini_api_key:
        raise TryOnError("GEMINI_API_KEY is not set")
    genai.configure(api_key=settings.gemini_api_key)
    model = genai.GenerativeModel(model_name=settings.gemini_image_model)
    return TryOnGenerator(model, retry_delay=settings.tryon_retry_delay)
