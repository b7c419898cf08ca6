"""FastMCP server exposing the story designer to MCP-capable agents.

Tools:
  - list_stories()              — summaries of stored stories
  - read_story(slug)            — a stored story document
  - run_command(line)           — run one console command, return response lines
  - execute_script(script)      — run a story-building script in the sandbox

Storage must be initialised first; running as __main__ does that from the
environment.

Usage:
    python -m backend.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from backend import storage
from backend.console import run_command as run_console_command

mcp = FastMCP("story-designer")


@mcp.tool()
def list_stories() -> list[dict]:
    """List stored stories with slug, name and description."""
    return [s.model_dump() for s in storage.story_store().list()]


@mcp.tool()
def read_story(slug: str) -> dict:
    """Return a stored story document, or an error entry if it does not exist."""
    try:
        data = storage.story_store().load(slug)
    except ValueError:
        data = None
    if data is None:
        return {"error": f"Story not found: {slug}"}
    return data.model_dump(by_alias=True)


@mcp.tool()
async def run_command(line: str) -> list[str]:
    """Run a console command such as '/story-list' and return its response lines."""
    return await run_console_command(line)


@mcp.tool()
async def execute_script(script: str) -> dict:
    """Run a story-building script in the sandbox and return the execution result."""
    result = await storage.script_executor().execute(script)
    return result.model_dump(mode="json")


if __name__ == "__main__":
    import os
    from pathlib import Path

    from dotenv import load_dotenv

    load_dotenv(Path(__file__).parent.parent / ".env")
    storage.init_storage(Path(os.getenv("DATA_DIR", "data")))
    mcp.run()
