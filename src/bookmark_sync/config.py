from __future__ import annotations

import os
import socket
from pathlib import Path

_DATA_DIR = Path("~/.local/share/bookmark-sync").expanduser()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.local_dir: Path = Path(
            os.environ.get("BOOKMARK_SYNC_LOCAL_DIR", str(_DATA_DIR / "bookmarks"))
        ).expanduser()
        self.cloud_dir: Path = Path(
            os.environ.get("BOOKMARK_SYNC_CLOUD_DIR", "~/CloudDocs")
        ).expanduser()
        self.container_name: str = os.environ.get("BOOKMARK_SYNC_CONTAINER", "bookmarks")
        self.state_file: Path = Path(
            os.environ.get("BOOKMARK_SYNC_STATE_FILE", str(_DATA_DIR / "state.json"))
        ).expanduser()
        self.extension: str = os.environ.get("BOOKMARK_SYNC_EXTENSION", "kml").lstrip(".")
        self.device_name: str = os.environ.get("BOOKMARK_SYNC_DEVICE_NAME", "") or socket.gethostname()
        self.enabled: bool = _env_bool("BOOKMARK_SYNC_ENABLED", True)
        self.settle_delay: float = _env_float("BOOKMARK_SYNC_SETTLE_DELAY", 0.5)
        self.rescan_interval: float = _env_float("BOOKMARK_SYNC_RESCAN_INTERVAL", 60.0)
        self.workers: int = int(_env_float("BOOKMARK_SYNC_WORKERS", 4))
        self.reload_timeout: float = _env_float("BOOKMARK_SYNC_RELOAD_TIMEOUT", 30.0)
        self.background_grace: float = _env_float("BOOKMARK_SYNC_BACKGROUND_GRACE", 25.0)
        self.coordination_timeout: float = _env_float("BOOKMARK_SYNC_COORDINATION_TIMEOUT", 10.0)
        self.reload_command: str = os.environ.get("BOOKMARK_SYNC_RELOAD_COMMAND", "")
        self.log_level: str = os.environ.get("BOOKMARK_SYNC_LOG_LEVEL", "INFO")
        self.log_file: str = os.environ.get("BOOKMARK_SYNC_LOG_FILE", "")

    def validate(self) -> None:
        if not str(self.local_dir).strip():
            raise ValueError("BOOKMARK_SYNC_LOCAL_DIR must not be empty")
        if not str(self.cloud_dir).strip():
            raise ValueError("BOOKMARK_SYNC_CLOUD_DIR must not be empty")
        if not self.container_name or "/" in self.container_name:
            raise ValueError("BOOKMARK_SYNC_CONTAINER must be a plain directory name")
        if not self.extension:
            raise ValueError("BOOKMARK_SYNC_EXTENSION must not be empty")
        if self.settle_delay <= 0:
            raise ValueError("BOOKMARK_SYNC_SETTLE_DELAY must be positive")
        if self.rescan_interval <= 0:
            raise ValueError("BOOKMARK_SYNC_RESCAN_INTERVAL must be positive")
        if self.workers < 1:
            raise ValueError("BOOKMARK_SYNC_WORKERS must be at least 1")
        if self.reload_timeout <= 0:
            raise ValueError("BOOKMARK_SYNC_RELOAD_TIMEOUT must be positive")
        if self.coordination_timeout <= 0:
            raise ValueError("BOOKMARK_SYNC_COORDINATION_TIMEOUT must be positive")
        if self.local_dir.resolve() == (self.cloud_dir / self.container_name).resolve():
            raise ValueError("The local directory and the cloud container must differ")


settings = Settings()
