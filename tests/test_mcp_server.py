"""MCP tool tests using the FastMCP in-process test client."""

from mcp.shared.memory import create_connected_server_and_client_session

import backend.mcp_server as mcp_server
from backend import storage
from storydesigner.models import StoryData


async def test_tools_registered():
    async with create_connected_server_and_client_session(mcp_server.mcp) as client:
        tools = await client.list_tools()
    assert {t.name for t in tools.tools} == {"list_stories", "read_story", "run_command", "execute_script"}


def test_list_and_read_stories():
    storage.story_store().save(StoryData(name="Tale", description="short"))
    assert mcp_server.list_stories() == [{"slug": "tale", "name": "Tale", "description": "short"}]
    assert mcp_server.read_story("tale")["name"] == "Tale"
    assert mcp_server.read_story("ghost") == {"error": "Story not found: ghost"}
    assert mcp_server.read_story("..") == {"error": "Story not found: .."}


async def test_run_command():
    lines = await mcp_server.run_command('/profile-name "Agent"')
    assert lines == ["✅ Profile name updated to: Agent"]


async def test_execute_script():
    result = await mcp_server.execute_script('Story.create("Mcp Tale").add_scene("a").publish()')
    assert result["success"] is True
    assert storage.story_store().exists("mcp-tale")


async def test_run_command_through_client():
    async with create_connected_server_and_client_session(mcp_server.mcp) as client:
        result = await client.call_tool("run_command", {"line": "/story-list"})
    text = " ".join(c.text for c in result.content)
    assert "Listing recent stories" in text
