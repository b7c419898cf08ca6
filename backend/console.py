"""Console entry points shared by the WebSocket route, the HTTP route and MCP tools."""

from storydesigner.console import Session, dispatch

from backend import storage


def open_session(assigned_id: str | None = None) -> Session:
    """Open a console session with the configured defaults."""
    config = storage.settings()
    return Session.open(
        assigned_id=assigned_id,
        default_id=config.shared_user_id,
        name=config.default_user_name,
        emoji=config.default_user_emoji,
    )


async def run_command(line: str, session: Session | None = None) -> list[str]:
    """Dispatch one command line and collect the response lines."""
    session = session or open_session()
    lines: list[str] = []

    async def collect(text: str) -> None:
        lines.append(text)

    await dispatch(line, session, collect, storage.command_registry())
    return lines
