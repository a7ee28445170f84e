"""Pydantic models for MCP tool outputs."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SyncControlResponse(BaseModel):
    """Response from a start/stop/pause/resume request."""

    success: bool
    message: str
    state: str  # stopped | starting | running | paused
    enabled: bool = True


class PreviewActionItem(BaseModel):
    """Single action a synchronization pass would perform."""

    kind: str
    identity: str = ""
    detail: str = ""


class PreviewResponse(BaseModel):
    """Response for a dry-run reconciliation of both sides."""

    success: bool
    message: str
    initial_sync_completed: bool = False
    actions: list[PreviewActionItem] = Field(default_factory=list)
