import asyncio
import os
from pathlib import Path
from typing import Awaitable, Callable

import requests

from muse.core.config import settings
from muse.core.logger import log_agent_action

STYLE_PREFIX = "High quality, digital art style, cinematic lighting. "


class PainterError(RuntimeError):
    pass


def generate_image(prompt: str) -> str:
    """
    Generates an illustration for a scene and saves it under IMAGES_DIR.
    Returns the public path of the image (/static/images/...).

    Raises:
        PainterError: when no API key is configured or the API gives no image
    """
    if not settings.IMAGE_API_KEY:
        raise PainterError("No image API key configured")

    payload = {
        "prompt": STYLE_PREFIX + prompt,
        "model_id": settings.IMAGE_MODEL,
        "key": settings.IMAGE_API_KEY,
        "width": settings.IMAGE_WIDTH,
        "height": settings.IMAGE_HEIGHT,
        "samples": 1
    }

    try:
        resp = requests.post(settings.IMAGE_API_URL, json=payload, timeout=60)
        resp.raise_for_status()
        data = resp.json()

        image_url = None
        if data.get("output"):
            image_url = data["output"][0]

        if not image_url:
            raise PainterError(f"No image in response (status={data.get('status')})")

        # Download and save
        img_resp = requests.get(image_url, timeout=60)
        img_resp.raise_for_status()
    except requests.RequestException as e:
        log_agent_action("painter", "generate_image", str(e), success=False)
        raise PainterError(f"Painter Error: {str(e)}") from e

    output_dir = Path(settings.IMAGES_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)

    filename = f"scene_{os.urandom(6).hex()}.png"
    (output_dir / filename).write_bytes(img_resp.content)

    log_agent_action("painter", "generate_image", filename)
    return f"/static/images/{filename}"


async def paint_scene(prompt: str) -> str:
    """Async collaborator used by the story engine, bounded by GENERATION_TIMEOUT."""
    try:
        return await asyncio.wait_for(asyncio.to_thread(generate_image, prompt), timeout=settings.GENERATION_TIMEOUT)
    except asyncio.TimeoutError as e:
        log_agent_action("painter", "generate_image", f"timed out after {settings.GENERATION_TIMEOUT}s", success=False)
        raise PainterError("Painter Error: timed out") from e


def with_placeholder(painter: Callable[[str], Awaitable[str]], placeholder_url: str) -> Callable[[str], Awaitable[str]]:
    """Wraps a painter so that a failure yields `placeholder_url` instead of an error."""

    async def painter_or_placeholder(prompt: str) -> str:
        try:
            return await painter(prompt)
        except Exception as e:
            log_agent_action("painter", "placeholder", f"using placeholder: {e}", success=False)
            return placeholder_url

    return painter_or_placeholder


def build_painter(fallback: str = None) -> Callable[[str], Awaitable[str]]:
    """Returns the painter for the configured IMAGE_FALLBACK policy ("none" or "placeholder")."""
    fallback = (fallback or settings.IMAGE_FALLBACK).lower()
    if fallback == "placeholder":
        return with_placeholder(paint_scene, settings.PLACEHOLDER_IMAGE_URL)
    if fallback != "none":
        raise ValueError(f"Unknown IMAGE_FALLBACK policy: {fallback}")
    return paint_scene
