"""MCP server for controlling local <-> cloud bookmark synchronization.

This is the long-running entry point. It creates a FastMCP server,
builds the sync engine, starts it when enabled, and registers the
control tools.

Run with:
    uv run bookmark-sync-mcp
"""

from __future__ import annotations

import atexit

from mcp.server.fastmcp import FastMCP

from bookmark_sync.config import settings
from bookmark_sync.factory import build_engine
from bookmark_sync.logging_setup import setup_logging
from bookmark_sync.tools.sync_tools import register_sync_tools

mcp = FastMCP(
    "bookmark-sync",
    instructions=(
        "Bookmark-Sync MCP server keeping a local directory of bookmark "
        "files in sync with a cloud-synced container directory. Use these "
        "tools to inspect status, preview pending actions, and start, stop, "
        "pause or resume synchronization."
    ),
)


def _initialize() -> None:
    """Initialize all components and register tools."""
    settings.validate()
    setup_logging(settings.log_level, settings.log_file)

    engine = build_engine(settings)
    atexit.register(engine.close)

    register_sync_tools(mcp, engine, settings)
    if settings.enabled:
        engine.start()


def main() -> None:
    """Entry point for the MCP server."""
    _initialize()
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
