"""Host side of the sandbox bridge.

Scripts never hold a Story object. The isolated process asks the host to act
on stories by small integer handles, passing plain values only:

    ("call", "create_story", ("The Badger Awakens", ""))   → ("ok", 1)
    ("call", "add_scene", (1, "start"))                     → ("ok", None)
    ("call", "queue_media", (1, "misty forest", "fantasy")) → ("ok", "misty-forest.jpg")
    ("call", "publish", (1,))                               → ("ok", {...summary...})
    ("call", "open", (1, "/etc/passwd"))                    → ("error", "Unknown bridge function: open")

Unknown handles are ignored like any other missing context, so the builder
stays fluent. Media generation is slow and async, so inside the script it is
only queued; `drain_media()` runs the queue after the script has finished.
The handle table and the queue belong to one execution and die with it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from storydesigner.media import MediaGenerator
from storydesigner.storage import StoryStore
from storydesigner.story import Story, media_filename

logger = logging.getLogger(__name__)

PLAIN_TYPES = (str, int, float, bool, type(None))

Reply = tuple[str, Any]


@dataclass
class MediaJob:
    handle: int
    prompt: str
    template: str
    filename: str


class StoryBridge:
    FUNCTIONS = (
        "create_story", "add_scene", "set_text", "add_event",
        "link", "add_keyword", "queue_media", "publish",
    )

    def __init__(self, store: StoryStore, media: MediaGenerator | None = None) -> None:
        self.store = store
        self.media = media
        self.stories: dict[int, Story] = {}
        self.media_queue: list[MediaJob] = []
        self._next_handle = 0

    # ------------------------------------------------------------------
    # Bridge functions
    # ------------------------------------------------------------------

    def create_story(self, name: str, description: str = "") -> int:
        self._next_handle += 1
        self.stories[self._next_handle] = Story.create(
            str(name), str(description), store=self.store, media=self.media
        )
        return self._next_handle

    def add_scene(self, handle: int, key: str) -> None:
        if story := self.stories.get(handle):
            story.add_scene(str(key))

    def set_text(self, handle: int, text: str) -> None:
        if story := self.stories.get(handle):
            story.set_text(str(text))

    def add_event(self, handle: int, media: str, trigger: str = "autostart") -> None:
        if story := self.stories.get(handle):
            story.add_event(str(media), str(trigger))

    def link(self, handle: int, from_key: str, to_key: str) -> None:
        if story := self.stories.get(handle):
            story.link(str(from_key), str(to_key))

    def add_keyword(self, handle: int, keyword: str) -> None:
        if story := self.stories.get(handle):
            story.add_keyword(str(keyword))

    def queue_media(self, handle: int, prompt: str, template: str = "default") -> str | None:
        if handle not in self.stories:
            return None
        job = MediaJob(handle, str(prompt), str(template), media_filename(str(prompt)))
        self.media_queue.append(job)
        return job.filename

    def publish(self, handle: int) -> dict | None:
        story = self.stories.get(handle)
        if story is None:
            return None
        return story.publish().model_dump()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def call(self, name: str, args: tuple) -> Reply:
        """Run one bridge function for the isolated process. Never raises."""
        if name not in self.FUNCTIONS:
            return "error", f"Unknown bridge function: {name}"
        if not isinstance(args, (tuple, list)) or not all(isinstance(a, PLAIN_TYPES) for a in args):
            return "error", f"{name} accepts plain values only"
        try:
            return "ok", getattr(self, name)(*args)
        except TypeError as e:
            return "error", f"{name}: {e}"
        except (OSError, ValueError) as e:
            logger.error("bridge %s failed: %s", name, e)
            return "error", f"{name} failed: {e}"

    # ------------------------------------------------------------------
    # After the script
    # ------------------------------------------------------------------

    async def drain_media(self, log: Callable[[str], Awaitable[None]] | None = None) -> int:
        """Generate queued media one job at a time. Returns how many jobs ran.

        A failing job is logged and the drain moves on to the next.
        """
        done = 0
        while self.media_queue:
            job = self.media_queue.pop(0)
            story = self.stories[job.handle]
            if log:
                await log(f"🎨 Generating media: {job.prompt}")
            try:
                filename = await story.generate_media(job.prompt, job.template)
            except (OSError, RuntimeError, ValueError) as e:
                logger.error("media job %s for %s failed: %s", job.filename, story.slug, e)
                if log:
                    await log(f"⚠️ Media generation failed for {job.filename}: {e}")
                continue
            done += 1
            record = story.media[-1]
            if log:
                if record.error:
                    await log(f"⚠️ Placeholder written for {filename}: {record.error}")
                else:
                    await log(f"✅ Media ready: {filename}")
        return done

    def summary(self) -> list[dict]:
        return [story.snapshot() for story in self.stories.values()]
