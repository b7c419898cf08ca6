"""Two-level command registry: major → minor → CommandSpec."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from storydesigner.console.session import Session

Emit = Callable[[str], Awaitable[None]]
CommandHandler = Callable[[list[str], "Session", Emit], Union[Awaitable[None], None]]

SEPARATOR = "-"


@dataclass(frozen=True)
class CommandSpec:
    major: str
    minor: str
    param_counts: tuple[int, ...]
    handler: CommandHandler
    summary: str = ""

    @property
    def name(self) -> str:
        return f"{self.major}{SEPARATOR}{self.minor}"

    def accepts(self, count: int) -> bool:
        return count in self.param_counts


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, dict[str, CommandSpec]] = {}

    def register(
        self,
        major: str,
        minor: str,
        param_counts: tuple[int, ...] | list[int],
        handler: CommandHandler,
        summary: str = "",
    ) -> CommandSpec:
        """Register a handler. A command must accept at least one parameter count."""
        if not major or not minor or SEPARATOR in major or SEPARATOR in minor:
            raise ValueError(f"Invalid command name: {major!r}/{minor!r}")
        counts = tuple(sorted(set(param_counts)))
        if not counts:
            raise ValueError(f"Command {major}{SEPARATOR}{minor} accepts no parameter counts")
        if any(c < 0 for c in counts):
            raise ValueError(f"Negative parameter count for {major}{SEPARATOR}{minor}")
        spec = CommandSpec(major, minor, counts, handler, summary)
        self._commands.setdefault(major, {})[minor] = spec
        return spec

    def find(self, major: str, minor: str) -> CommandSpec | None:
        return self._commands.get(major, {}).get(minor)

    def majors(self) -> list[str]:
        return list(self._commands)

    def __iter__(self) -> Iterator[CommandSpec]:
        for minors in self._commands.values():
            yield from minors.values()

    def __len__(self) -> int:
        return sum(len(minors) for minors in self._commands.values())
