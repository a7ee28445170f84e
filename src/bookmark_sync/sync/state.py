"""Durable engine state using a JSON-backed Pydantic model.

The only thing the engine persists across process restarts is whether
the initial synchronization has been completed.  Everything else is
rebuilt from a fresh full gather on every start.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class PersistedSyncState(BaseModel):
    """Root model for the persisted state file."""

    version: int = 1
    initial_sync_completed: bool = False
    initial_sync_completed_at: datetime | None = None
    device_name: str = ""


class InitialSyncStore:
    """Reads and writes the "initial sync completed" flag.

    The flag only ever goes from ``False`` to ``True`` through
    :meth:`mark_completed` and never reverts.

    Args:
        state_file: Path to the JSON state file.
    """

    def __init__(self, state_file: str | Path) -> None:
        self._state_file = Path(state_file)
        self._state: PersistedSyncState | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._state_file

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> PersistedSyncState:
        """Load the state from disk, returning an empty state if the file
        does not exist or is empty.
        """
        if self._state_file.exists() and self._state_file.stat().st_size > 0:
            raw = self._state_file.read_text(encoding="utf-8")
            self._state = PersistedSyncState.model_validate_json(raw)
        else:
            self._state = PersistedSyncState()
        return self._state

    def save(self, state: PersistedSyncState) -> None:
        """Atomically persist *state* as pretty-printed JSON.

        Parent directories are created automatically if they do not exist.
        """
        self._state = state
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._state_file.parent,
            prefix=f".{self._state_file.name}.",
            delete=False,
        ) as tmp:
            tmp.write(state.model_dump_json(indent=2) + "\n")
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, self._state_file)

    def _ensure_loaded(self) -> PersistedSyncState:
        if self._state is None:
            self.load()
        assert self._state is not None  # noqa: S101
        return self._state

    # ------------------------------------------------------------------
    # Flag
    # ------------------------------------------------------------------

    @property
    def initial_sync_completed(self) -> bool:
        return self._ensure_loaded().initial_sync_completed

    def mark_completed(self, device_name: str = "") -> None:
        """Record that the initial synchronization finished.

        This is a no-op when the flag is already set.
        """
        with self._lock:
            state = self._ensure_loaded()
            if state.initial_sync_completed:
                return
            self.save(
                state.model_copy(
                    update={
                        "initial_sync_completed": True,
                        "initial_sync_completed_at": datetime.now(timezone.utc),
                        "device_name": device_name or state.device_name,
                    }
                )
            )
            logger.info("Initial synchronization marked as completed in %s", self._state_file)
