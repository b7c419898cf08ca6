"""Tests for backend.console session defaults."""

from backend import storage
from backend.console import open_session, run_command
from storydesigner.config import Settings


def test_open_session_uses_configured_defaults():
    storage.init_storage(
        storage.data_dir(),
        Settings(default_user_name="Narrator", default_user_emoji="📜", shared_user_id="shared"),
    )
    session = open_session()
    assert session.current_user == "Narrator"
    assert session.user_emoji == "📜"
    assert session.user_id == "shared"
    assert session.shares_identity


def test_assigned_identity_beats_shared_default():
    storage.init_storage(storage.data_dir(), Settings(shared_user_id="shared"))
    assert open_session("mine").user_id == "mine"


async def test_run_command_collects_lines():
    assert await run_command("") == ["❌ No command provided"]
