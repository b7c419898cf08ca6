"""Sandboxed script executor.

    execute(script, limits) → ExecutionResult

One execution:
  1. Spawn an isolated child process (IsolatedContext) under the memory limit.
  2. The child installs the console facade and the Story builder, reports
     "ready", then compiles and runs the script. The wall-clock timeout starts
     at "ready"; process start-up is not charged to the script.
  3. The host answers bridge calls from a worker thread against an
     execution-local StoryBridge; log lines are forwarded to the caller.
  4. Completed, timed out or faulted, the queued media is drained.
  5. The context is released and disposed on every exit path.

    Idle → ContextCreated → BridgeInstalled → Running
         → (Completed | TimedOut | Faulted) → MediaDraining → Disposed

Compile errors, runtime exceptions, memory exhaustion and timeouts all come
back as a faulted result; nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import time
from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from storydesigner.config import ExecutionLimits
from storydesigner.media import MediaGenerator
from storydesigner.sandbox.bridge import StoryBridge
from storydesigner.sandbox.isolate import run_isolated
from storydesigner.storage import StoryStore

logger = logging.getLogger(__name__)

LogSink = Callable[[str], Awaitable[None]]

STARTUP_TIMEOUT = 30.0


class ExecutionState(str, Enum):
    IDLE = "idle"
    CONTEXT_CREATED = "context_created"
    BRIDGE_INSTALLED = "bridge_installed"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAULTED = "faulted"
    MEDIA_DRAINING = "media_draining"
    DISPOSED = "disposed"


class ExecutionResult(BaseModel):
    success: bool
    outcome: ExecutionState
    error: str | None = None
    stories_created: int = 0
    stories: list[dict[str, Any]] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)
    states: list[ExecutionState] = Field(default_factory=list)


class IsolatedContext:
    """A spawned child process running one script, and the pipe to it."""

    def __init__(self, script: str, memory_bytes: int) -> None:
        ctx = multiprocessing.get_context("spawn")
        self._conn, self._child_conn = ctx.Pipe()
        self._process = ctx.Process(
            target=run_isolated,
            args=(self._child_conn, script, memory_bytes),
            daemon=True,
        )
        self._started = False

    def start(self) -> None:
        self._process.start()
        self._started = True
        self._child_conn.close()

    def poll(self, timeout: float) -> bool:
        return self._conn.poll(timeout)

    def recv(self) -> tuple:
        return self._conn.recv()

    def send(self, message: tuple) -> None:
        self._conn.send(message)

    def terminate(self) -> None:
        if self._started and self._process.is_alive():
            self._process.terminate()
            self._process.join(1.0)
            if self._process.is_alive():
                self._process.kill()

    def release(self) -> None:
        self._conn.close()
        self._child_conn.close()

    def dispose(self) -> None:
        if not self._started:
            return
        self._process.join(1.0)
        self.terminate()
        self._process.join()
        self._process.close()


class _Channel:
    """Collects log lines from the worker thread and forwards them to the loop."""

    def __init__(self, sink: LogSink | None, loop: asyncio.AbstractEventLoop) -> None:
        self.sink = sink
        self.loop = loop
        self.lines: list[str] = []
        self.states: list[ExecutionState] = [ExecutionState.IDLE]
        self._pending: list[Future] = []

    def enter(self, state: ExecutionState) -> None:
        logger.debug("execution state → %s", state.value)
        self.states.append(state)

    def emit_threadsafe(self, line: str) -> None:
        self.lines.append(line)
        if self.sink:
            self._pending.append(asyncio.run_coroutine_threadsafe(self.sink(line), self.loop))

    async def emit(self, line: str) -> None:
        self.lines.append(line)
        if self.sink:
            await self.sink(line)

    async def flush(self) -> None:
        for future in self._pending:
            try:
                await asyncio.wrap_future(future)
            except (RuntimeError, ConnectionError) as e:
                logger.warning("log forwarding failed: %s", e)
        self._pending.clear()


class ScriptExecutor:
    def __init__(
        self,
        store: StoryStore,
        media: MediaGenerator | None = None,
        limits: ExecutionLimits | None = None,
    ) -> None:
        self.store = store
        self.media = media
        self.limits = limits or ExecutionLimits()

    async def execute(
        self,
        script: str,
        limits: ExecutionLimits | None = None,
        log: LogSink | None = None,
    ) -> ExecutionResult:
        limits = limits or self.limits
        channel = _Channel(log, asyncio.get_running_loop())
        bridge = StoryBridge(self.store, self.media)
        context: IsolatedContext | None = None
        outcome, error = ExecutionState.FAULTED, None
        logger.info("executing script (%d chars, %d MB, %d ms)", len(script), limits.memory_mb, limits.timeout_ms)
        try:
            try:
                context = IsolatedContext(script, limits.memory_bytes)
                context.start()
            except OSError as e:
                error = f"Could not start isolated context: {e}"
            else:
                channel.enter(ExecutionState.CONTEXT_CREATED)
                outcome, error = await asyncio.to_thread(self._drive, context, bridge, limits, channel)
                await channel.flush()
            channel.enter(outcome)
            if error:
                logger.warning("script %s: %s", outcome.value, error)
                await channel.emit(f"❌ Script error: {error}")

            channel.enter(ExecutionState.MEDIA_DRAINING)
            await bridge.drain_media(channel.emit)
        finally:
            if context is not None:
                context.release()
                context.dispose()
            channel.enter(ExecutionState.DISPOSED)

        stories = bridge.summary()
        logger.info("script %s, %d stories created", outcome.value, len(stories))
        return ExecutionResult(
            success=outcome == ExecutionState.COMPLETED,
            outcome=outcome,
            error=error,
            stories_created=len(stories),
            stories=stories,
            logs=channel.lines,
            states=channel.states,
        )

    def _drive(
        self,
        context: IsolatedContext,
        bridge: StoryBridge,
        limits: ExecutionLimits,
        channel: _Channel,
    ) -> tuple[ExecutionState, str | None]:
        """Serve the child until it finishes, faults or runs out of time. Runs in a worker thread."""
        deadline = time.monotonic() + STARTUP_TIMEOUT
        running = False
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not context.poll(remaining):
                context.terminate()
                if running:
                    return ExecutionState.TIMED_OUT, f"Script timed out after {limits.timeout_ms} ms"
                return ExecutionState.FAULTED, "Isolated context did not start"
            try:
                message = context.recv()
            except (EOFError, OSError):
                return ExecutionState.FAULTED, "Isolated context exited unexpectedly"

            kind = message[0]
            if kind == "ready":
                channel.enter(ExecutionState.BRIDGE_INSTALLED)
                channel.enter(ExecutionState.RUNNING)
                running = True
                deadline = time.monotonic() + limits.timeout_seconds
            elif kind == "log":
                channel.emit_threadsafe(str(message[1]))
            elif kind == "call":
                try:
                    context.send(bridge.call(message[1], message[2]))
                except (OSError, ValueError) as e:
                    return ExecutionState.FAULTED, f"Bridge reply failed: {e}"
            elif kind == "done":
                return ExecutionState.COMPLETED, None
            elif kind == "fault":
                return ExecutionState.FAULTED, f"{message[1]} error: {message[2]}"
            else:
                context.terminate()
                return ExecutionState.FAULTED, f"Unexpected message from isolated context: {kind}"
