"""Text command console for AI agents.

    "/major-minor [param...]"  →  tokenize → registry lookup → handler

Handlers emit human-readable response lines; "✅"/"❌" prefixes are a UX
convention only.
"""

from .dispatcher import dispatch  # noqa: F401
from .handlers import ConsoleHandlers, build_registry  # noqa: F401
from .registry import CommandRegistry, CommandSpec  # noqa: F401
from .session import Session, SessionHub, resolve_identity  # noqa: F401
from .tokenizer import tokenize  # noqa: F401
