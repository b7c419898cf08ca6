"""Story artifact endpoints: list, load, exists, save, delete, media, issues."""

from fastapi import APIRouter, HTTPException

from backend import storage
from storydesigner.models import StoryData
from storydesigner.story import Story

router = APIRouter()


def _load(slug: str) -> StoryData:
    try:
        data = storage.story_store().load(slug)
    except ValueError:
        raise HTTPException(400, "Invalid slug")
    if data is None:
        raise HTTPException(404, "Story not found")
    return data


@router.get("/stories")
async def list_stories():
    """List all stored stories (slug, name, description)."""
    return {"stories": [s.model_dump() for s in storage.story_store().list()]}


@router.get("/stories/{slug}")
async def get_story(slug: str):
    """Load a story document by slug."""
    return _load(slug).model_dump(by_alias=True)


@router.get("/stories/{slug}/exists")
async def story_exists(slug: str):
    try:
        return {"exists": storage.story_store().exists(slug)}
    except ValueError:
        raise HTTPException(400, "Invalid slug")


@router.post("/stories")
async def save_story(body: StoryData):
    """Save a story document. The slug is derived from its name."""
    slug = storage.slugify(body.name)
    path = storage.story_store().save(body, slug)
    return {"success": True, "slug": slug, "path": str(path)}


@router.delete("/stories/{slug}")
async def delete_story(slug: str):
    """Delete a story directory and everything in it."""
    try:
        deleted = storage.story_store().delete(slug)
    except ValueError:
        raise HTTPException(400, "Invalid slug")
    if not deleted:
        raise HTTPException(404, "Story not found")
    return {"success": True}


@router.get("/stories/{slug}/media")
async def list_media(slug: str):
    """Media files stored with a story."""
    try:
        return {"files": storage.story_store().list_media(slug)}
    except ValueError:
        raise HTTPException(400, "Invalid slug")


@router.get("/stories/{slug}/issues")
async def story_issues(slug: str):
    """Dangling links and orphaned events in a stored story."""
    return {"issues": Story.from_data(_load(slug)).validate()}
