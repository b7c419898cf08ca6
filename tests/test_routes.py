"""HTTP and WebSocket API tests using FastAPI's TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

from backend import storage
from backend.app import create_app
from backend.routes import router
from backend.routes.console import hub_sink
from storydesigner.console.session import Session, SessionHub
from storydesigner.media import FalMedia
from storydesigner.models import StoryData


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(storage.data_dir()))


def _save(client: TestClient, name: str, **fields) -> dict:
    resp = client.post("/api/stories", json={"name": name, **fields})
    assert resp.status_code == 200
    return resp.json()


# ---------------------------------------------------------------------------
# Health / settings
# ---------------------------------------------------------------------------

def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_settings(client):
    body = client.get("/api/settings").json()
    assert body["limits"] == {"memory_mb": 128, "timeout_ms": 5000}
    assert body["community_store"] == "MemoryStore"


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

class TestStories:
    def test_save_derives_slug(self, client) -> None:
        body = _save(client, "The Badger's Forest", isLocked=True)
        assert body["success"] is True
        assert body["slug"] == "the-badger-s-forest"
        assert storage.story_store().load("the-badger-s-forest").is_locked

    def test_list(self, client) -> None:
        _save(client, "Tale", description="short")
        assert client.get("/api/stories").json() == {
            "stories": [{"slug": "tale", "name": "Tale", "description": "short"}]
        }

    def test_get(self, client) -> None:
        _save(client, "Tale", scenes=[{"key": "a", "text": "hi"}])
        body = client.get("/api/stories/tale").json()
        assert body["scenes"][0]["text"] == "hi"
        assert "isLocked" in body

    def test_get_missing(self, client) -> None:
        assert client.get("/api/stories/ghost").status_code == 404

    def test_exists(self, client) -> None:
        assert client.get("/api/stories/tale/exists").json() == {"exists": False}
        _save(client, "Tale")
        assert client.get("/api/stories/tale/exists").json() == {"exists": True}

    def test_delete(self, client) -> None:
        _save(client, "Tale")
        assert client.delete("/api/stories/tale").json() == {"success": True}
        assert client.delete("/api/stories/tale").status_code == 404

    def test_invalid_slug(self, client) -> None:
        assert client.get("/api/stories/%2E%2E/media").status_code in (400, 404)

    def test_media(self, client) -> None:
        _save(client, "Tale")
        storage.story_store().write_media("tale", "a.jpg", b"x")
        assert client.get("/api/stories/tale/media").json() == {"files": ["a.jpg"]}

    def test_issues(self, client) -> None:
        storage.story_store().save(StoryData.model_validate({
            "name": "Tale",
            "scenes": [{"key": "a", "connections": ["ghost"]}],
        }))
        issues = client.get("/api/stories/tale/issues").json()["issues"]
        assert issues == ["scene 'a' links to missing scene 'ghost'"]


# ---------------------------------------------------------------------------
# fal proxy
# ---------------------------------------------------------------------------

class TestFalProxy:
    def test_not_configured(self, client) -> None:
        resp = client.post("/api/fal", json={"action": "generateImage", "prompt": "p"})
        assert resp.status_code == 503

    def test_invalid_action(self, client) -> None:
        resp = client.post("/api/fal", json={"action": "generateVideo", "prompt": "p"})
        assert resp.status_code == 400

    def test_forwards_params(self) -> None:
        fal = FalMedia(api_key="k")
        storage.init_storage(storage.data_dir(), media=fal)
        app = FastAPI()
        app.include_router(router, prefix="/api")
        run = AsyncMock(return_value={"images": [{"url": "u"}]})
        with patch.object(FalMedia, "run", run):
            resp = TestClient(app).post(
                "/api/fal", json={"action": "generateImageKontext", "prompt": "p", "aspect_ratio": "1:1"}
            )
        assert resp.status_code == 200
        assert resp.json()["result"] == {"images": [{"url": "u"}]}
        assert run.call_args.args == ("generateImageKontext", {"prompt": "p", "aspect_ratio": "1:1"})


# ---------------------------------------------------------------------------
# AI console
# ---------------------------------------------------------------------------

class TestConsoleHttp:
    def test_commands_listed(self, client) -> None:
        commands = {c["name"]: c["params"] for c in client.get("/api/ai/commands").json()}
        assert commands["community-vote"] == [2, 3]
        assert len(commands) == 20

    def test_command(self, client) -> None:
        lines = client.post("/api/ai/command", json={"line": "/system-whoami", "user_id": "me"}).json()["lines"]
        assert "(me)" in lines[0]

    def test_bad_command(self, client) -> None:
        lines = client.post("/api/ai/command", json={"line": "/nope"}).json()["lines"]
        assert lines == ["❌ Invalid command format"]

    def test_execute(self, client) -> None:
        script = 'Story.create("Http Tale").add_scene("a").publish()\nconsole.log("done")'
        body = client.post("/api/ai/execute", json={"script": script}).json()
        assert body["success"] is True
        assert body["outcome"] == "completed"
        assert body["stories_created"] == 1
        assert body["logs"] == ["done"]
        assert client.get("/api/stories/http-tale/exists").json() == {"exists": True}

    def test_execute_timeout_override(self, client) -> None:
        body = client.post("/api/ai/execute", json={"script": "while True:\n    pass", "timeout_ms": 200}).json()
        assert body["outcome"] == "timed_out"


class TestConsoleSocket:
    def _skip_greeting(self, ws) -> list[str]:
        lines = []
        while True:
            message = ws.receive_json()
            lines.append(message["text"])
            if message["text"].startswith("Type /system-help"):
                return lines

    def test_greeting_and_commands_in_order(self, client) -> None:
        with client.websocket_connect("/api/ai/ws?user_id=socket-user") as ws:
            greeting = self._skip_greeting(ws)
            assert any("socket-user" in line for line in greeting)
            ws.send_json({"type": "command", "line": '/profile-name "Quill"'})
            ws.send_text("/system-whoami")
            assert ws.receive_json() == {"type": "response", "text": "✅ Profile name updated to: Quill"}
            assert "Quill (socket-user)" in ws.receive_json()["text"]

    def test_unknown_message_type(self, client) -> None:
        with client.websocket_connect("/api/ai/ws") as ws:
            self._skip_greeting(ws)
            ws.send_json({"type": "dance"})
            assert ws.receive_json() == {"type": "error", "text": "Unknown message type: dance"}

    def test_execute_streams_logs_then_result(self, client) -> None:
        with client.websocket_connect("/api/ai/ws") as ws:
            self._skip_greeting(ws)
            ws.send_json({"type": "execute", "script": 'console.log("step")\nStory.create("Socket Tale")'})
            assert ws.receive_json() == {"type": "log", "text": "step"}
            result = ws.receive_json()
            assert result["type"] == "result"
            assert result["result"]["stories_created"] == 1
            assert "logs" not in result["result"]

    def test_quit_closes_connection(self, client) -> None:
        from starlette.websockets import WebSocketDisconnect

        with client.websocket_connect("/api/ai/ws") as ws:
            self._skip_greeting(ws)
            ws.send_text("/system-quit")
            assert "Ending session" in ws.receive_json()["text"]
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()

    def test_broadcast_between_sockets(self, client) -> None:
        with client.websocket_connect("/api/ai/ws") as first, client.websocket_connect("/api/ai/ws") as second:
            self._skip_greeting(first)
            self._skip_greeting(second)
            first.send_text('/chat-broadcast "hello"')
            assert first.receive_json()["text"] == '📢 Broadcasting message: "hello"'
            assert first.receive_json()["text"].endswith(": hello")
            assert first.receive_json()["text"] == "✅ Message broadcasted to 2 connected user(s)!"
            received = second.receive_json()
            assert received["type"] == "response"
            assert received["text"].endswith(": hello")


async def test_closed_peer_does_not_break_broadcast():
    from starlette.websockets import WebSocketDisconnect

    hub = SessionHub()
    alive = AsyncMock()
    hub.join(Session.open(), hub_sink(AsyncMock(side_effect=WebSocketDisconnect(1006))))
    hub.join(Session.open(), hub_sink(alive))
    assert await hub.broadcast("hello") == 1
    alive.assert_awaited_once_with("hello")
