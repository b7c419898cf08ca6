"""FastAPI API endpoints under /api.

Endpoint groups: health/settings, stories (artifact store), fal (media proxy),
ai (console WebSocket, command and script execution).
"""

from fastapi import APIRouter

from .console import router as console_router
from .media import router as media_router
from .settings import router as settings_router
from .stories import router as stories_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(stories_router)
router.include_router(media_router)
router.include_router(console_router)
