"""Core domain models.

The story document model, the artifact store and the sandbox bridge all
exchange these types. Pydantic is used for validation and serialisation at
every data boundary; the on-disk `story.json` uses the camelCase field names
the story player expects (`isLocked`), hence the aliases.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Trigger = Literal["autostart", "after"]


class EventData(BaseModel):
    """A media attachment fired on scene entry or after a prior event."""

    key: str
    event: Trigger = "autostart"
    source: str  # key of the scene the event is attached to
    media: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class SceneData(BaseModel):
    """A node of the story graph."""

    key: str
    text: str = ""
    events: list[EventData] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)


class StoryData(BaseModel):
    """Serialised form of a story document (the contents of story.json)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    is_locked: bool = Field(False, alias="isLocked")
    events: list[EventData] = Field(default_factory=list)
    scenes: list[SceneData] = Field(default_factory=list)
    mindmap: dict[str, Any] = Field(default_factory=dict)
    attributes: dict[str, Any] = Field(default_factory=dict)


class MediaRecord(BaseModel):
    """Provenance of one generated (or placeholder) media file."""

    prompt: str
    template: str = "default"
    file: str
    original_url: str | None = None
    error: str | None = None  # set when the generator failed and a placeholder was written


class StorySummary(BaseModel):
    """Listing entry for a stored story."""

    slug: str
    name: str
    description: str = ""


class PublishSummary(BaseModel):
    """Result of publishing a story document."""

    name: str
    slug: str
    path: str
    scenes: int
    events: int
    media: int
