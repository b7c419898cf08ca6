"""Route one console line to its handler.

    "/story-fork tavern 'My Tavern'"
         ↓ tokenize
    ["story-fork", "tavern", "My Tavern"]
         ↓ split name on "-" → ("story", "fork"), look up in the registry
         ↓ check the parameter count against the accepted set
    handler(["tavern", "My Tavern"], session, emit)

Format problems are answered with a single line and the handler is never
called. Handlers own their failures: anything they raise is a bug and is not
caught here.
"""

from __future__ import annotations

import inspect
import logging

from storydesigner.console.registry import SEPARATOR, CommandRegistry, Emit
from storydesigner.console.session import Session
from storydesigner.console.tokenizer import tokenize

logger = logging.getLogger(__name__)

NO_COMMAND = "❌ No command provided"
INVALID_FORMAT = "❌ Invalid command format"


async def dispatch(line: str, session: Session, emit: Emit, registry: CommandRegistry) -> None:
    tokens = tokenize(line)
    if not tokens:
        await emit(NO_COMMAND)
        return

    name = tokens[0]
    parts = name.split(SEPARATOR)
    if len(parts) != 2 or not all(parts):
        await emit(INVALID_FORMAT)
        return

    spec = registry.find(parts[0], parts[1])
    if spec is None:
        await emit(f"❌ Unknown command: {name}")
        return

    params = tokens[1:]
    if not spec.accepts(len(params)):
        expected = ", ".join(str(c) for c in spec.param_counts)
        await emit(f"❌ Invalid number of parameters for {name}. Expected one of: {expected}")
        return

    logger.debug("dispatch %s params=%d session=%s", name, len(params), session.connection_id)
    result = spec.handler(params, session, emit)
    if inspect.isawaitable(result):
        await result
