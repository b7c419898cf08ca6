"""Story artifact store.

Published stories live on disk, one directory per slug, with the document
serialised as JSON next to its media files. There is no database here; the
directory tree is the source of truth and the file system arbitrates slug
uniqueness.

Directory layout:

    {base}/
      {slug}/
        story.json      ← StoryData (camelCase keys)
        *.jpg, *.mp4 …  ← generated or placeholder media

Slug rules: name → Unicode normalize → strip non-ASCII → lowercase →
replace non-alnum runs with hyphen → strip leading/trailing hyphens.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path

from pydantic import ValidationError

from storydesigner.models import StoryData, StorySummary

logger = logging.getLogger(__name__)

STORY_FILE = "story.json"

MEDIA_EXTENSIONS = frozenset({
    ".mp4", ".avi", ".mov", ".mkv", ".webm",
    ".mp3", ".wav", ".ogg", ".flac", ".aac",
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp",
    ".pdf", ".txt", ".md",
})


def slugify(title: str) -> str:
    """Convert a story name to a filesystem-safe slug.

    Every run of characters outside a-z0-9 becomes one hyphen, after
    lowercasing, so "Badger's Den" → "badger-s-den" and "Café" → "caf".
    """
    text = re.sub(r"[^a-z0-9]+", "-", title.lower())
    text = text.strip("-")
    return text or "untitled"


def _check_component(value: str, what: str) -> str:
    if not value or value in (".", "..") or Path(value).name != value:
        raise ValueError(f"Invalid {what}: {value!r}")
    return value


class StoryStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Path helpers
    # ------------------------------------------------------------------

    def story_dir(self, slug: str) -> Path:
        return self._base / _check_component(slug, "slug")

    def story_file(self, slug: str) -> Path:
        return self.story_dir(slug) / STORY_FILE

    def media_path(self, slug: str, filename: str) -> Path:
        return self.story_dir(slug) / _check_component(filename, "media filename")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def save(self, data: StoryData, slug: str | None = None) -> Path:
        """Write story.json for a document. Returns the file path."""
        slug = slug or slugify(data.name)
        path = self.story_file(slug)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data.model_dump_json(by_alias=True, indent=2))
        logger.info("saved story slug=%s path=%s", slug, path)
        return path

    def load(self, slug: str) -> StoryData | None:
        path = self.story_file(slug)
        if not path.is_file():
            return None
        return StoryData.model_validate_json(path.read_text())

    def exists(self, slug: str) -> bool:
        return self.story_file(slug).is_file()

    def list(self) -> list[StorySummary]:
        """Summaries of every readable story, sorted by slug."""
        results = []
        for child in sorted(self._base.iterdir()):
            path = child / STORY_FILE
            if not child.is_dir() or not path.is_file():
                continue
            try:
                raw = json.loads(path.read_text())
                data = StoryData.model_validate(raw)
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("skipping unreadable story %s: %s", child.name, e)
                continue
            results.append(StorySummary(
                slug=child.name,
                name=data.name or child.name,
                description=data.description,
            ))
        return results

    def delete(self, slug: str) -> bool:
        """Remove the whole per-slug tree. Returns False if it did not exist."""
        directory = self.story_dir(slug)
        if not directory.is_dir():
            return False
        shutil.rmtree(directory)
        logger.info("deleted story slug=%s", slug)
        return True

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def write_media(self, slug: str, filename: str, content: bytes | str) -> Path:
        path = self.media_path(slug, filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            path.write_text(content)
        else:
            path.write_bytes(content)
        return path

    def has_media(self, slug: str, filename: str) -> bool:
        return self.media_path(slug, filename).is_file()

    def list_media(self, slug: str) -> list[str]:
        """Media files in a story directory, hidden files and story.json excluded."""
        directory = self.story_dir(slug)
        if not directory.is_dir():
            return []
        return sorted(
            p.name for p in directory.iterdir()
            if p.is_file()
            and not p.name.startswith(".")
            and p.suffix.lower() in MEDIA_EXTENSIONS
        )
