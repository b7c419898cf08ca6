"""Tests for console sessions, identity resolution and the session hub."""

import uuid
from unittest.mock import AsyncMock

from storydesigner.console.session import Session, SessionHub, resolve_identity


class TestResolveIdentity:
    def test_assigned_wins(self) -> None:
        assert resolve_identity("me", "shared") == ("me", "session")

    def test_default_when_unassigned(self) -> None:
        assert resolve_identity(None, "shared") == ("shared", "default")

    def test_minted_when_nothing_configured(self) -> None:
        user_id, source = resolve_identity(None, None)
        assert source == "minted"
        uuid.UUID(user_id)

    def test_minted_ids_differ(self) -> None:
        assert resolve_identity(None, None)[0] != resolve_identity(None, None)[0]


class TestSession:
    def test_defaults(self) -> None:
        session = Session.open()
        assert session.current_user == "Anonymous"
        assert session.user_emoji == "🤖"
        assert session.story_count == 0
        assert not session.closing

    def test_shared_identity_flag(self) -> None:
        assert Session.open(default_id="shared").shares_identity
        assert not Session.open(assigned_id="me", default_id="shared").shares_identity

    def test_connection_ids_unique(self) -> None:
        assert Session.open().connection_id != Session.open().connection_id


class TestSessionHub:
    async def test_broadcast_reaches_every_member(self) -> None:
        hub = SessionHub()
        a, b = AsyncMock(), AsyncMock()
        hub.join(Session.open(), a)
        hub.join(Session.open(), b)
        assert await hub.broadcast("hello") == 2
        a.assert_awaited_once_with("hello")
        b.assert_awaited_once_with("hello")

    async def test_failed_member_is_skipped(self) -> None:
        hub = SessionHub()
        broken = AsyncMock(side_effect=RuntimeError("socket closed"))
        ok = AsyncMock()
        hub.join(Session.open(), broken)
        hub.join(Session.open(), ok)
        assert await hub.broadcast("hi") == 1
        ok.assert_awaited_once_with("hi")

    async def test_leave(self) -> None:
        hub = SessionHub()
        session = Session.open()
        hub.join(session, AsyncMock())
        hub.leave(session)
        hub.leave(session)
        assert len(hub) == 0
        assert await hub.broadcast("x") == 0
