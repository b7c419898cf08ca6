"""Per-connection console state and the hub of connected sessions.

Identity resolution order for a new session:
  1. an identity assigned to this connection (e.g. by the transport),
  2. the configured shared default identity (AI_SHARED_USER_ID),
  3. a freshly minted UUID.
Step 2 makes every session without its own identity act as the same user;
that is a deployment choice and is logged as a warning.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from storydesigner.console.registry import Emit

logger = logging.getLogger(__name__)

IdentitySource = Literal["session", "default", "minted"]


def resolve_identity(assigned: str | None, default: str | None) -> tuple[str, IdentitySource]:
    if assigned:
        return assigned, "session"
    if default:
        logger.warning("session uses shared default identity %s", default)
        return default, "default"
    return str(uuid.uuid4()), "minted"


@dataclass
class Session:
    user_id: str
    current_user: str = "Anonymous"
    user_emoji: str | None = "🤖"
    story_count: int = 0
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    identity_source: IdentitySource = "minted"
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    closing: bool = False

    @classmethod
    def open(
        cls,
        *,
        assigned_id: str | None = None,
        default_id: str | None = None,
        name: str = "Anonymous",
        emoji: str = "🤖",
    ) -> Session:
        user_id, source = resolve_identity(assigned_id, default_id)
        session = cls(user_id=user_id, current_user=name, user_emoji=emoji, identity_source=source)
        logger.info("session %s opened as %s (%s)", session.connection_id, user_id, source)
        return session

    @property
    def shares_identity(self) -> bool:
        return self.identity_source == "default"


class SessionHub:
    """Connected sessions and their response sinks, keyed by connection id."""

    def __init__(self) -> None:
        self._members: dict[str, tuple[Session, Emit]] = {}

    def join(self, session: Session, emit: Emit) -> None:
        self._members[session.connection_id] = (session, emit)

    def leave(self, session: Session) -> None:
        self._members.pop(session.connection_id, None)

    def __len__(self) -> int:
        return len(self._members)

    def sessions(self) -> list[Session]:
        return [s for s, _ in self._members.values()]

    async def broadcast(self, line: str) -> int:
        """Send a line to every connected session. Returns how many received it."""
        delivered = 0
        for session, emit in list(self._members.values()):
            try:
                await emit(line)
            except (RuntimeError, ConnectionError) as e:
                logger.warning("broadcast to %s failed: %s", session.connection_id, e)
                continue
            delivered += 1
        return delivered
