"""Runtime settings for the story designer services.

Values come from the process environment (a `.env` file is loaded by the app
entry points via python-dotenv before `load_settings()` is called).

    DATA_DIR                 Root data directory (default ./data)
    HELP_DIR                 Directory holding the console help texts
    AI_MEMORY_LIMIT_MB       Memory ceiling per script execution (128)
    AI_EXECUTION_TIMEOUT_MS  Wall-clock budget per script execution (5000)
    AI_SHARED_USER_ID        Default identity shared by console sessions
    AI_DEFAULT_USER_EMAIL    Email used when creating profile records
    AI_DEFAULT_USER_NAME     Display name of a fresh session ("Anonymous")
    AI_DEFAULT_USER_EMOJI    Avatar glyph of a fresh session ("🤖")
    SUPABASE_URL             Relational store base URL (unset → in-memory)
    SUPABASE_SERVICE_KEY     Relational store service key
    FAL_KEY                  Generative-media API key (unset → placeholders)
    MEDIA_TIMEOUT            Generative-media HTTP timeout in seconds (120)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

BUNDLED_HELP_DIR = Path(__file__).parent / "console" / "help"


class ExecutionLimits(BaseModel):
    """Resource budget for one sandboxed script execution."""

    memory_mb: int = Field(128, gt=0)
    timeout_ms: int = Field(5000, gt=0)

    @property
    def memory_bytes(self) -> int:
        return self.memory_mb * 1024 * 1024

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class Settings(BaseModel):
    data_dir: Path = Path("data")
    help_dir: Path = BUNDLED_HELP_DIR
    limits: ExecutionLimits = Field(default_factory=ExecutionLimits)
    shared_user_id: str | None = None
    default_user_email: str | None = None
    default_user_name: str = "Anonymous"
    default_user_emoji: str = "🤖"
    supabase_url: str = ""
    supabase_service_key: str = ""
    fal_key: str = ""
    media_timeout: float = Field(120.0, gt=0)

    @property
    def stories_dir(self) -> Path:
        return self.data_dir / "stories"

    @property
    def emoji_dir(self) -> Path:
        return self.data_dir / "emoji"


def load_settings(env: Mapping[str, str] | None = None, **overrides) -> Settings:
    """Build Settings from environment variables, then apply keyword overrides."""
    env = os.environ if env is None else env
    values: dict = {
        "data_dir": Path(env.get("DATA_DIR", "data")),
        "help_dir": Path(env.get("HELP_DIR", str(BUNDLED_HELP_DIR))),
        "limits": {
            "memory_mb": env.get("AI_MEMORY_LIMIT_MB", 128),
            "timeout_ms": env.get("AI_EXECUTION_TIMEOUT_MS", 5000),
        },
        "shared_user_id": env.get("AI_SHARED_USER_ID") or None,
        "default_user_email": env.get("AI_DEFAULT_USER_EMAIL") or None,
        "default_user_name": env.get("AI_DEFAULT_USER_NAME", "Anonymous"),
        "default_user_emoji": env.get("AI_DEFAULT_USER_EMOJI", "🤖"),
        "supabase_url": env.get("SUPABASE_URL", ""),
        "supabase_service_key": env.get("SUPABASE_SERVICE_KEY", ""),
        "fal_key": env.get("FAL_KEY", ""),
        "media_timeout": env.get("MEDIA_TIMEOUT", 120.0),
    }
    values.update(overrides)
    return Settings.model_validate(values)
