"""AI console endpoints: WebSocket console, command and script execution over HTTP.

WebSocket /api/ai/ws messages (JSON text frames):
  client → {"type": "command", "line": "/story-list"}
           {"type": "execute", "script": "story = Story.create(...)"}
           a non-JSON frame is treated as a command line
  server → {"type": "response", "text": ...}   handler output
           {"type": "log", "text": ...}        script progress
           {"type": "error", "text": ...}
           {"type": "result", "result": {...}} ExecutionResult without logs

Messages on one connection are handled one at a time, so responses arrive in
the order the commands were sent.
"""

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from backend import storage
from backend.console import open_session, run_command
from storydesigner.config import ExecutionLimits
from storydesigner.console import dispatch
from storydesigner.console.registry import Emit

from .models import CommandBody, ExecuteBody

logger = logging.getLogger(__name__)

router = APIRouter()


def _limits(body: ExecuteBody) -> ExecutionLimits:
    defaults = storage.settings().limits
    return ExecutionLimits(
        memory_mb=body.memory_mb or defaults.memory_mb,
        timeout_ms=body.timeout_ms or defaults.timeout_ms,
    )


def hub_sink(emit: Emit) -> Emit:
    """Wrap a socket's emit for the session hub.

    A peer whose socket has gone away raises ConnectionError, which the hub
    skips, instead of WebSocketDisconnect reaching the broadcasting session.
    """
    async def deliver(text: str) -> None:
        try:
            await emit(text)
        except WebSocketDisconnect as e:
            raise ConnectionError(f"socket closed with code {e.code}") from e

    return deliver


@router.get("/ai/commands")
async def list_commands():
    """Registered console commands with their accepted parameter counts."""
    return [
        {"name": spec.name, "params": list(spec.param_counts), "summary": spec.summary}
        for spec in storage.command_registry()
    ]


@router.post("/ai/command")
async def post_command(body: CommandBody):
    """Run one console command in a throwaway session."""
    return {"lines": await run_command(body.line, open_session(body.user_id))}


@router.post("/ai/execute")
async def execute_script(body: ExecuteBody):
    """Run a story-building script in the sandbox."""
    result = await storage.script_executor().execute(body.script, _limits(body))
    return result.model_dump(mode="json")


@router.websocket("/ai/ws")
async def console_socket(websocket: WebSocket):
    await websocket.accept()
    session = open_session(websocket.query_params.get("user_id"))
    hub = storage.session_hub()

    async def send(kind: str, text: str) -> None:
        await websocket.send_json({"type": kind, "text": text})

    async def respond(text: str) -> None:
        await send("response", text)

    async def log(text: str) -> None:
        await send("log", text)

    hub.join(session, hub_sink(respond))
    try:
        for line in storage.console_handlers().greeting(session):
            await respond(line)

        while not session.closing:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict):
                message = {"type": "command", "line": raw}

            kind = message.get("type")
            if kind == "command":
                await dispatch(str(message.get("line", "")), session, respond, storage.command_registry())
            elif kind == "execute":
                result = await storage.script_executor().execute(str(message.get("script", "")), log=log)
                await websocket.send_json({
                    "type": "result",
                    "result": result.model_dump(mode="json", exclude={"logs"}),
                })
            else:
                await send("error", f"Unknown message type: {kind}")

        await websocket.close()
    except WebSocketDisconnect:
        logger.info("console session %s disconnected", session.connection_id)
    finally:
        hub.leave(session)
