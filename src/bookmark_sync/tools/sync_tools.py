"""MCP tools for controlling and inspecting bookmark synchronization."""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP

from bookmark_sync.config import Settings
from bookmark_sync.factory import preview_actions
from bookmark_sync.sync.engine import SyncEngine
from bookmark_sync.sync.errors import SyncError
from bookmark_sync.sync.models import ActionKind
from bookmark_sync.sync.state import InitialSyncStore
from bookmark_sync.tools.schemas import PreviewActionItem, PreviewResponse, SyncControlResponse


def _control_response(engine: SyncEngine, message: str) -> dict[str, Any]:
    error = engine.error
    return SyncControlResponse(
        success=error is None,
        message=f"{message}: {error}" if error is not None else message,
        state=engine.state.value,
        enabled=engine.enabled,
    ).model_dump()


def register_sync_tools(mcp: FastMCP, engine: SyncEngine, cfg: Settings) -> None:
    """Register lifecycle and status tools with the MCP server."""

    @mcp.tool()
    def get_sync_status() -> dict[str, Any]:
        """Report the engine state, busy flag, current error and the
        files waiting for a download or a conflict resolution.
        """
        return engine.status().model_dump(mode="json")

    @mcp.tool()
    def start_sync() -> dict[str, Any]:
        """Start synchronization, or resume it when paused."""
        if not engine.enabled:
            return SyncControlResponse(
                success=False,
                message="Synchronization is disabled; call set_sync_enabled first",
                state=engine.state.value,
                enabled=False,
            ).model_dump()
        engine.start()
        return _control_response(engine, "Synchronization started")

    @mcp.tool()
    def stop_sync() -> dict[str, Any]:
        """Stop synchronization and discard in-memory state.

        The next start gathers both sides again from scratch.
        """
        engine.stop()
        return _control_response(engine, "Synchronization stopped")

    @mcp.tool()
    def pause_sync() -> dict[str, Any]:
        """Stop observing changes but keep the last gathered listings."""
        engine.pause()
        return _control_response(engine, "Synchronization paused")

    @mcp.tool()
    def resume_sync() -> dict[str, Any]:
        """Continue after pause_sync."""
        engine.resume()
        return _control_response(engine, "Synchronization resumed")

    @mcp.tool()
    def set_sync_enabled(enabled: bool) -> dict[str, Any]:
        """Switch synchronization on or off.

        Args:
            enabled: ``True`` starts synchronization, ``False`` stops it.
        """
        engine.set_enabled(enabled)
        return _control_response(
            engine, "Synchronization enabled" if enabled else "Synchronization disabled"
        )

    @mcp.tool()
    def preview_sync() -> dict[str, Any]:
        """List the actions a synchronization pass would perform now.

        Both directories are scanned once; no file is changed.
        """
        initial_done = InitialSyncStore(cfg.state_file).initial_sync_completed
        try:
            actions = preview_actions(cfg)
        except SyncError as exc:
            return PreviewResponse(
                success=False,
                message=f"{exc.kind.value}: {exc.message}",
                initial_sync_completed=initial_done,
            ).model_dump()

        items = [
            PreviewActionItem(
                kind=action.kind.value,
                identity=action.identity,
                detail=str(action.error) if action.kind is ActionKind.REPORT_ERROR else "",
            )
            for action in actions
        ]
        return PreviewResponse(
            success=True,
            message=f"{len(items)} pending action(s)" if items else "Everything is in sync",
            initial_sync_completed=initial_done,
            actions=items,
        ).model_dump()
