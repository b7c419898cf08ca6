"""Branching-story document model.

A Story is built incrementally: scenes are added one at a time (the last one
added is "current"), text and media events attach to the current scene, and
links connect scenes by key. Every mutation returns the story itself so calls
chain:

    story = Story.create("The Badger Awakens", store=store)
    story.add_scene("start").set_text("A forest...").add_event("forest.jpg")
    story.add_scene("den").link("start", "den")
    story.publish()

Mutations never raise. Operations that need context that is not there (an
event with no current scene, a link to an unknown key) are silently skipped;
the sandbox builder API relies on this to stay fluent for untrusted scripts.
Referential integrity is not enforced while building; `validate()` is the
separate verification pass over a finished document.

Events live both on their scene and in the story-wide `events` list so the
whole document serialises without walking the graph.
"""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Any

from storydesigner.media import MediaError, MediaGenerator, apply_template
from storydesigner.models import (
    EventData,
    MediaRecord,
    PublishSummary,
    SceneData,
    StoryData,
)
from storydesigner.storage import StoryStore, slugify

logger = logging.getLogger(__name__)


def media_filename(prompt: str) -> str:
    """Filename a generated image for `prompt` is stored under."""
    return f"{slugify(prompt)}.jpg"


def placeholder_text(prompt: str, template: str, error: str | None = None) -> str:
    text = f"# Placeholder for: {prompt}\n# Template: {template}"
    if error:
        text += f"\n# Error: {error}"
    return text


def _event_sequence(events: list[EventData]) -> int:
    """Largest numeric key suffix among `events`, so new keys continue past it."""
    suffixes = [e.key.rpartition("_")[2] for e in events]
    return max((int(s) for s in suffixes if s.isdigit()), default=0)


class Story:
    def __init__(
        self,
        name: str,
        description: str = "",
        keywords: list[str] | None = None,
        is_locked: bool = False,
        *,
        store: StoryStore | None = None,
        media: MediaGenerator | None = None,
    ) -> None:
        self.name = name
        self.description = description
        self.keywords: list[str] = list(dict.fromkeys(keywords or []))
        self.is_locked = is_locked
        self.events: list[EventData] = []
        self.scenes: list[SceneData] = []
        self.mindmap: dict[str, Any] = {}
        self.attributes: dict[str, Any] = {}
        self.media: list[MediaRecord] = []
        self._current: SceneData | None = None
        self._event_seq = 0
        self._store = store
        self._media = media

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, name: str, description: str = "", **kwargs) -> Story:
        story = cls(name, description, **kwargs)
        logger.debug("story created name=%s", name)
        return story

    @classmethod
    def from_data(cls, data: StoryData, **kwargs) -> Story:
        """Rebuild a document from its serialised form.

        Scene events and the story-wide event list share instances when their
        keys match, so the denormalised lists stay in step after loading.
        """
        story = cls(data.name, data.description, data.keywords, data.is_locked, **kwargs)
        story.events = [e.model_copy(deep=True) for e in data.events]
        by_key = {e.key: e for e in story.events}
        for scene in data.scenes:
            events = [by_key.get(e.key) or e.model_copy(deep=True) for e in scene.events]
            story.scenes.append(SceneData(
                key=scene.key,
                text=scene.text,
                events=events,
                connections=list(dict.fromkeys(scene.connections)),
            ))
        story.mindmap = dict(data.mindmap)
        story.attributes = dict(data.attributes)
        story._event_seq = _event_sequence(story.events)
        return story

    @classmethod
    def load(cls, store: StoryStore, slug: str, **kwargs) -> Story | None:
        data = store.load(slug)
        if data is None:
            return None
        return cls.from_data(data, store=store, **kwargs)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def slug(self) -> str:
        return slugify(self.name)

    @property
    def current_scene(self) -> SceneData | None:
        return self._current

    def scene(self, key: str) -> SceneData | None:
        for scene in self.scenes:
            if scene.key == key:
                return scene
        return None

    # ------------------------------------------------------------------
    # Mutations (chainable, never raise)
    # ------------------------------------------------------------------

    def add_scene(self, key: str) -> Story:
        """Add an empty scene and make it current. An existing key is replaced in place."""
        scene = SceneData(key=key)
        for i, existing in enumerate(self.scenes):
            if existing.key == key:
                dropped = {e.key for e in existing.events}
                self.events = [e for e in self.events if e.key not in dropped]
                self.scenes[i] = scene
                break
        else:
            self.scenes.append(scene)
        self._current = scene
        logger.debug("added scene %s to %s", key, self.name)
        return self

    def set_text(self, text: str) -> Story:
        if self._current is not None:
            self._current.text = text
        return self

    def add_event(self, media: str, trigger: str = "autostart") -> Story:
        """Attach a media event to the current scene and to the story-wide list."""
        if self._current is None:
            return self
        stem = PurePath(media).stem or "media"
        taken = {e.key for e in self.events}
        self._event_seq += 1
        while f"{self._current.key}_{stem}_{self._event_seq}" in taken:
            self._event_seq += 1
        event = EventData(
            key=f"{self._current.key}_{stem}_{self._event_seq}",
            event="autostart" if trigger == "autostart" else "after",
            source=self._current.key,
            media=media,
        )
        self._current.events.append(event)
        self.events.append(event)
        logger.debug("added event %s (%s)", event.key, event.event)
        return self

    def link(self, from_key: str, to_key: str) -> Story:
        source = self.scene(from_key)
        if source is not None and self.scene(to_key) is not None:
            if to_key not in source.connections:
                source.connections.append(to_key)
        return self

    def add_keyword(self, keyword: str) -> Story:
        if keyword not in self.keywords:
            self.keywords.append(keyword)
        return self

    def remove_keyword(self, keyword: str) -> Story:
        self.keywords = [k for k in self.keywords if k != keyword]
        return self

    def remove_scene(self, key: str) -> Story:
        scene = self.scene(key)
        if scene is None:
            return self
        dropped = {e.key for e in scene.events}
        self.events = [e for e in self.events if e.key not in dropped]
        self.scenes = [s for s in self.scenes if s.key != key]
        if self._current is scene:
            self._current = None
        return self

    def remove_event(self, key: str) -> Story:
        self.events = [e for e in self.events if e.key != key]
        for scene in self.scenes:
            scene.events = [e for e in scene.events if e.key != key]
        return self

    def set_mindmap(self, mindmap: dict[str, Any]) -> Story:
        self.mindmap = mindmap
        return self

    def set_attributes(self, attributes: dict[str, Any]) -> Story:
        self.attributes = attributes
        return self

    def set_locked(self, locked: bool) -> Story:
        self.is_locked = locked
        return self

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def validate(self) -> list[str]:
        """Report dangling links and events whose source scene is missing."""
        keys = {s.key for s in self.scenes}
        issues = []
        for scene in self.scenes:
            for target in scene.connections:
                if target not in keys:
                    issues.append(f"scene '{scene.key}' links to missing scene '{target}'")
        for event in self.events:
            if event.source not in keys:
                issues.append(f"event '{event.key}' is attached to missing scene '{event.source}'")
        return issues

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_data(self) -> StoryData:
        return StoryData(
            name=self.name,
            description=self.description,
            keywords=list(self.keywords),
            is_locked=self.is_locked,
            events=self.events,
            scenes=self.scenes,
            mindmap=self.mindmap,
            attributes=self.attributes,
        )

    def snapshot(self) -> dict[str, Any]:
        """Plain-data view of the in-memory state, including media provenance."""
        data = self.to_data().model_dump(by_alias=True)
        data["slug"] = self.slug
        data["media"] = [m.model_dump(exclude_none=True) for m in self.media]
        return data

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------

    def _require_store(self) -> StoryStore:
        if self._store is None:
            raise RuntimeError(f"Story '{self.name}' has no artifact store")
        return self._store

    async def generate_media(self, prompt: str, template: str = "default") -> str:
        """Generate an image for `prompt` into the story directory. Returns its filename.

        Generator failures never propagate: a placeholder file is written and
        the error is recorded on the media entry instead.
        """
        store = self._require_store()
        filename = media_filename(prompt)
        try:
            if self._media is None:
                raise MediaError("No media generator configured")
            urls = await self._media.generate_images(apply_template(prompt, template))
            content = await self._media.download(urls[0])
            store.write_media(self.slug, filename, content)
            record = MediaRecord(prompt=prompt, template=template, file=filename, original_url=urls[0])
            logger.info("generated media %s for %s", filename, self.slug)
        except MediaError as e:
            logger.warning("media generation failed for %s, writing placeholder: %s", filename, e)
            store.write_media(self.slug, filename, placeholder_text(prompt, template, str(e)))
            record = MediaRecord(prompt=prompt, template=template, file=filename, error=str(e))
        self.media.append(record)
        return filename

    def publish(self) -> PublishSummary:
        """Serialise the document into its slug directory and materialise missing media."""
        store = self._require_store()
        path = store.save(self.to_data(), self.slug)
        for record in self.media:
            if not store.has_media(self.slug, record.file):
                store.write_media(self.slug, record.file, placeholder_text(record.prompt, record.template))
        summary = PublishSummary(
            name=self.name,
            slug=self.slug,
            path=str(path),
            scenes=len(self.scenes),
            events=len(self.events),
            media=len(self.media),
        )
        logger.info(
            "published story %s scenes=%d events=%d media=%d",
            self.slug, summary.scenes, summary.events, summary.media,
        )
        return summary
