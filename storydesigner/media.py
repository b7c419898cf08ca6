"""Generative-media client — HTTP connection to the fal.ai image API.

The story document model injects a media generator matching the protocol:

    async def generate_images(self, prompt, aspect_ratio="16:9", num_images=1) -> list[str]
    async def download(self, url) -> bytes

The service never stores assets for us: it answers with URLs and the caller
downloads and persists the bytes itself.

    FalMedia   — real HTTP client for fal.ai (Flux Kontext / Flux Pro).

Tests use a stub generator instead.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import httpx

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

PROMPT_TEMPLATES: dict[str, str] = {
    "cinematic": "cinematic shot of {prompt}, dramatic lighting, movie still, high quality, detailed",
    "fantasy": "fantasy art style, {prompt}, magical atmosphere, vibrant colors, detailed artwork",
    "dramatic": "dramatic scene of {prompt}, intense mood, dynamic composition, high contrast",
    "default": "{prompt}",
}


def apply_template(prompt: str, template: str = "default") -> str:
    """Expand a prompt with a named style template; unknown names fall back to default."""
    pattern = PROMPT_TEMPLATES.get(template, PROMPT_TEMPLATES["default"])
    return pattern.format(prompt=prompt)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class MediaGenerator(Protocol):
    async def generate_images(
        self, prompt: str, aspect_ratio: str = "16:9", num_images: int = 1
    ) -> list[str]: ...

    async def download(self, url: str) -> bytes: ...


# ---------------------------------------------------------------------------
# FalMedia
# ---------------------------------------------------------------------------

FalAction = Literal["generateImageKontext", "generateImage"]

FAL_ENDPOINTS: dict[str, str] = {
    "generateImageKontext": "/fal-ai/flux-pro/kontext/text-to-image",
    "generateImage": "/fal-ai/flux-pro",
}


class FalMedia:
    """Async HTTP client for the fal.ai image endpoints.

    Actions:
      "generateImageKontext"  — POST /fal-ai/flux-pro/kontext/text-to-image
                                {"prompt", "aspect_ratio", "num_images", ...}
      "generateImage"         — POST /fal-ai/flux-pro
                                {"prompt", "image_size", "num_images", ...}
      Response (both): {"images": [{"url": ..., "width": ..., "height": ...}], ...}

    Args:
        api_key:  fal.ai key, sent as "Authorization: Key <api_key>".
        base_url: API root. Defaults to "https://fal.run".
        timeout:  HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(self, api_key: str, base_url: str = "https://fal.run", timeout: float = 120.0) -> None:
        if not api_key:
            raise MediaError("FAL_KEY is required for media generation")
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Key {self._api_key}",
        }

    def _build_body(self, action: str, params: dict[str, Any]) -> dict[str, Any]:
        if "prompt" not in params:
            raise MediaError("A prompt is required")
        if action == "generateImage":
            return {
                "prompt": params["prompt"],
                "image_size": params.get("image_size", "landscape_16_9"),
                "num_images": params.get("num_images", 1),
                "guidance_scale": params.get("guidance_scale", 3.5),
                "num_inference_steps": params.get("num_inference_steps", 28),
                "safety_tolerance": params.get("safety_tolerance", "4"),
            }
        return {
            "prompt": params["prompt"],
            "aspect_ratio": params.get("aspect_ratio", "16:9"),
            "num_images": params.get("num_images", 1),
            "guidance_scale": params.get("guidance_scale", 3.5),
            "safety_tolerance": params.get("safety_tolerance", "4"),
            "enhance_prompt": True,
        }

    async def run(self, action: FalAction, params: dict[str, Any]) -> dict[str, Any]:
        """Call one fal.ai action and return the raw JSON response."""
        endpoint = FAL_ENDPOINTS.get(action)
        if endpoint is None:
            raise MediaError(f"Invalid action - {action}")
        url = f"{self._base_url}{endpoint}"
        body = self._build_body(action, params)
        logger.debug("media call action=%s url=%s prompt_len=%d", action, url, len(body["prompt"]))

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
            return resp.json()
        except httpx.ConnectError as e:
            raise MediaError(f"Cannot connect to media service at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise MediaError(f"Media service returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            raise MediaError(f"Media service timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise MediaError(f"Media service request failed: {e}") from e
        except ValueError as e:
            raise MediaError("Media service returned a non-JSON response") from e

    async def generate_images(
        self, prompt: str, aspect_ratio: str = "16:9", num_images: int = 1
    ) -> list[str]:
        data = await self.run(
            "generateImageKontext",
            {"prompt": prompt, "aspect_ratio": aspect_ratio, "num_images": num_images},
        )
        images = data.get("images") if isinstance(data, dict) else None
        if not images or not all(isinstance(image, dict) and "url" in image for image in images):
            raise MediaError("Unexpected response format from media service")
        return [image["url"] for image in images]

    async def download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MediaError(f"Media download returned HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise MediaError(f"Media download failed: {e}") from e
        return resp.content


# ---------------------------------------------------------------------------
# MediaError — raised by FalMedia for all connection and protocol failures
# ---------------------------------------------------------------------------

class MediaError(RuntimeError):
    """Raised when the media service cannot be reached or returns an error."""
