"""fal.ai proxy endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from backend import storage
from storydesigner.media import FAL_ENDPOINTS, FalMedia, MediaError

from .models import FalBody

router = APIRouter()


@router.post("/fal")
async def fal_proxy(body: FalBody):
    """Run one fal.ai action (generateImageKontext | generateImage)."""
    if body.action not in FAL_ENDPOINTS:
        raise HTTPException(400, f"Invalid action - {body.action}")
    media = storage.media_generator()
    if not isinstance(media, FalMedia):
        raise HTTPException(503, "Media generation is not configured")
    params = body.model_dump(exclude={"action"})
    if not params.get("prompt"):
        raise HTTPException(400, "A prompt is required")
    try:
        result = await media.run(body.action, params)
    except MediaError as e:
        raise HTTPException(502, str(e))
    return {
        "success": True,
        "result": result,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
