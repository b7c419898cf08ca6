"""Storage initialization and service accessors."""

import logging
from pathlib import Path

from storydesigner.community import CommunityStore, MemoryStore, PostgrestStore
from storydesigner.config import Settings, load_settings
from storydesigner.console import CommandRegistry, ConsoleHandlers, SessionHub, build_registry
from storydesigner.media import FalMedia, MediaGenerator
from storydesigner.sandbox import ScriptExecutor
from storydesigner.storage import StoryStore, slugify  # noqa: F401

logger = logging.getLogger(__name__)

_settings: Settings | None = None
_story_store: StoryStore | None = None
_community: CommunityStore | None = None
_media: MediaGenerator | None = None
_hub: SessionHub | None = None
_handlers: ConsoleHandlers | None = None
_registry: CommandRegistry | None = None


def init_storage(
    data_dir: Path,
    settings: Settings | None = None,
    community: CommunityStore | None = None,
    media: MediaGenerator | None = None,
) -> None:
    global _settings, _story_store, _community, _media, _hub, _handlers, _registry

    _settings = (settings or load_settings()).model_copy(update={"data_dir": data_dir})
    _settings.data_dir.mkdir(parents=True, exist_ok=True)
    _settings.emoji_dir.mkdir(exist_ok=True)
    _story_store = StoryStore(_settings.stories_dir)

    if community is None:
        if _settings.supabase_url and _settings.supabase_service_key:
            community = PostgrestStore(_settings.supabase_url, _settings.supabase_service_key)
        else:
            logger.info("SUPABASE_URL not set, using in-memory community store")
            community = MemoryStore()
    _community = community

    if media is None and _settings.fal_key:
        media = FalMedia(_settings.fal_key, timeout=_settings.media_timeout)
    _media = media

    _hub = SessionHub()
    _handlers = ConsoleHandlers(_community, _settings, _hub)
    _registry = build_registry(_handlers)


def settings() -> Settings:
    assert _settings is not None, "Call init_storage() before using storage"
    return _settings


def data_dir() -> Path:
    return settings().data_dir


def emoji_dir() -> Path:
    return settings().emoji_dir


def story_store() -> StoryStore:
    assert _story_store is not None, "Call init_storage() before using storage"
    return _story_store


def community_store() -> CommunityStore:
    assert _community is not None, "Call init_storage() before using storage"
    return _community


def media_generator() -> MediaGenerator | None:
    return _media


def session_hub() -> SessionHub:
    assert _hub is not None, "Call init_storage() before using storage"
    return _hub


def console_handlers() -> ConsoleHandlers:
    assert _handlers is not None, "Call init_storage() before using storage"
    return _handlers


def command_registry() -> CommandRegistry:
    assert _registry is not None, "Call init_storage() before using storage"
    return _registry


def script_executor() -> ScriptExecutor:
    return ScriptExecutor(story_store(), media_generator(), settings().limits)
