"""Process-wide services for the HTTP app, the console and the MCP server.

Data layout:
  data/
    stories/             One directory per story slug (story.json + media)
    emoji/               Rendered avatar images, served at /emoji

`init_storage()` must run before any accessor is used. It picks the
relational store (PostgREST when SUPABASE_URL is set, in-memory otherwise)
and the media generator (fal.ai when FAL_KEY is set, placeholders otherwise).
"""

from .core import (  # noqa: F401
    command_registry,
    community_store,
    console_handlers,
    data_dir,
    emoji_dir,
    init_storage,
    media_generator,
    script_executor,
    session_hub,
    settings,
    slugify,
    story_store,
)
