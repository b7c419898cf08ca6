"""Health check and public settings endpoints."""

from fastapi import APIRouter

from backend import storage

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings():
    """Execution limits and which external collaborators are configured."""
    config = storage.settings()
    return {
        "limits": config.limits.model_dump(),
        "community_store": type(storage.community_store()).__name__,
        "media_generation": storage.media_generator() is not None,
        "shared_identity": config.shared_user_id is not None,
    }
