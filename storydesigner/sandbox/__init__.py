"""Sandboxed execution of untrusted story-building scripts.

    executor.py  host side: isolated context lifecycle, timeout, media drain
    bridge.py    host side: handle table and bridge functions
    isolate.py   child side: restricted compile, builder API, console facade
"""

from .bridge import MediaJob, StoryBridge  # noqa: F401
from .executor import (  # noqa: F401
    ExecutionResult,
    ExecutionState,
    IsolatedContext,
    ScriptExecutor,
)
