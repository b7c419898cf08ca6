"""Tests for the command registry and the dispatcher."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from storydesigner.console.dispatcher import INVALID_FORMAT, NO_COMMAND, dispatch
from storydesigner.console.registry import CommandRegistry
from storydesigner.console.session import Session


@pytest.fixture
def session() -> Session:
    return Session(user_id="user-1")


@pytest.fixture
def emit() -> AsyncMock:
    return AsyncMock()


def _lines(emit: AsyncMock) -> list[str]:
    return [c.args[0] for c in emit.call_args_list]


# ---------------------------------------------------------------------------
# CommandRegistry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_register_and_find(self) -> None:
        registry = CommandRegistry()
        handler = AsyncMock()
        spec = registry.register("story", "list", (0,), handler, "List stories")
        assert registry.find("story", "list") is spec
        assert spec.name == "story-list"
        assert spec.summary == "List stories"

    def test_unknown_lookup_is_none(self) -> None:
        registry = CommandRegistry()
        registry.register("story", "list", (0,), AsyncMock())
        assert registry.find("story", "nope") is None
        assert registry.find("nope", "list") is None

    def test_counts_are_normalised(self) -> None:
        registry = CommandRegistry()
        spec = registry.register("community", "vote", [3, 2, 3], AsyncMock())
        assert spec.param_counts == (2, 3)
        assert spec.accepts(2) and spec.accepts(3) and not spec.accepts(1)

    def test_empty_counts_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommandRegistry().register("story", "list", (), AsyncMock())

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommandRegistry().register("story", "list", (-1,), AsyncMock())

    def test_separator_in_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            CommandRegistry().register("story-x", "list", (0,), AsyncMock())

    def test_iteration_and_len(self) -> None:
        registry = CommandRegistry()
        registry.register("story", "list", (0,), AsyncMock())
        registry.register("story", "read", (1,), AsyncMock())
        registry.register("system", "help", (0, 1), AsyncMock())
        assert len(registry) == 3
        assert {s.name for s in registry} == {"story-list", "story-read", "system-help"}
        assert registry.majors() == ["story", "system"]


# ---------------------------------------------------------------------------
# dispatch
# ---------------------------------------------------------------------------

class TestDispatch:
    @pytest.fixture
    def handler(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def registry(self, handler: AsyncMock) -> CommandRegistry:
        registry = CommandRegistry()
        registry.register("community", "vote", (2, 3), handler)
        return registry

    async def test_calls_handler_with_params(self, registry, handler, session, emit) -> None:
        await dispatch('/community-vote upvote p1 "nice one"', session, emit, registry)
        handler.assert_awaited_once_with(["upvote", "p1", "nice one"], session, emit)
        emit.assert_not_awaited()

    @pytest.mark.parametrize("line", ["", "/", "   ", "/ !!"])
    async def test_no_command(self, line, registry, handler, session, emit) -> None:
        await dispatch(line, session, emit, registry)
        assert _lines(emit) == [NO_COMMAND]
        handler.assert_not_called()

    @pytest.mark.parametrize("line", ["/vote", "/community-vote-extra a b", "/-vote a b", "/community- a b"])
    async def test_invalid_format(self, line, registry, handler, session, emit) -> None:
        await dispatch(line, session, emit, registry)
        assert _lines(emit) == [INVALID_FORMAT]
        handler.assert_not_called()

    async def test_unknown_command(self, registry, handler, session, emit) -> None:
        await dispatch("/community-shout hi", session, emit, registry)
        assert _lines(emit) == ["❌ Unknown command: community-shout"]
        handler.assert_not_called()

    @pytest.mark.parametrize("params", ["", "a", "a b c d"])
    async def test_wrong_param_count_lists_accepted_counts(self, params, registry, handler, session, emit) -> None:
        await dispatch(f"/community-vote {params}", session, emit, registry)
        assert _lines(emit) == [
            "❌ Invalid number of parameters for community-vote. Expected one of: 2, 3"
        ]
        handler.assert_not_called()

    async def test_sync_handler_supported(self, session, emit) -> None:
        handler = MagicMock(return_value=None)
        registry = CommandRegistry()
        registry.register("system", "status", (0,), handler)
        await dispatch("/system-status", session, emit, registry)
        handler.assert_called_once_with([], session, emit)
