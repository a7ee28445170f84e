"""CLI entrypoint for bookmark-sync.

Runs the synchronization engine in the foreground, performs one-shot
synchronizations, and inspects the persisted state.
"""

from __future__ import annotations

import signal
import sys
import threading
from pathlib import Path

import click

from bookmark_sync.config import Settings
from bookmark_sync.factory import build_engine, preview_actions
from bookmark_sync.logging_setup import setup_logging
from bookmark_sync.sync.engine import SyncEngine, SyncLifecycle
from bookmark_sync.sync.errors import SyncError
from bookmark_sync.sync.state import InitialSyncStore


def _load_settings(ctx: click.Context) -> Settings:
    cfg: Settings = ctx.obj
    try:
        cfg.validate()
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)
    setup_logging(cfg.log_level, cfg.log_file)
    return cfg


def _print_status(engine: SyncEngine) -> None:
    status = engine.status()
    click.echo(f"state: {status.state.value}")
    click.echo(f"initial sync completed: {'yes' if status.initial_sync_completed else 'no'}")
    if status.pending_downloads:
        click.echo(f"pending downloads: {', '.join(status.pending_downloads)}")
    if status.pending_conflicts:
        click.echo(f"pending conflicts: {', '.join(status.pending_conflicts)}")
    if status.error:
        click.echo(f"error ({status.error_kind}): {status.error}", err=True)


@click.group()
@click.option("--local-dir", type=click.Path(path_type=Path), default=None, help="Local bookmarks directory.")
@click.option("--cloud-dir", type=click.Path(path_type=Path), default=None, help="Cloud-synced base directory.")
@click.option("--state-file", type=click.Path(path_type=Path), default=None, help="Persisted state file.")
@click.option("--log-level", default=None, help="Logging level (DEBUG, INFO, ...).")
@click.pass_context
def cli(
    ctx: click.Context,
    local_dir: Path | None,
    cloud_dir: Path | None,
    state_file: Path | None,
    log_level: str | None,
) -> None:
    """bookmark-sync: keep bookmark files in sync with a cloud mirror."""
    cfg = Settings()
    if local_dir is not None:
        cfg.local_dir = local_dir.expanduser()
    if cloud_dir is not None:
        cfg.cloud_dir = cloud_dir.expanduser()
    if state_file is not None:
        cfg.state_file = state_file.expanduser()
    if log_level is not None:
        cfg.log_level = log_level
    ctx.obj = cfg


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Synchronize continuously until interrupted.

    SIGUSR1 pauses as if the application went to the background,
    SIGUSR2 resumes as if it came back to the foreground.
    """
    cfg = _load_settings(ctx)
    if not cfg.enabled:
        click.echo("Synchronization is disabled (BOOKMARK_SYNC_ENABLED).")
        return

    engine = build_engine(cfg)
    finished = threading.Event()

    def _terminate(signum: int, frame: object) -> None:
        finished.set()

    signal.signal(signal.SIGINT, _terminate)
    signal.signal(signal.SIGTERM, _terminate)
    if hasattr(signal, "SIGUSR1"):
        signal.signal(signal.SIGUSR1, lambda *_: engine.enter_background())
        signal.signal(signal.SIGUSR2, lambda *_: engine.enter_foreground())

    engine.start()
    try:
        while not finished.wait(0.5):
            if engine.state is SyncLifecycle.STOPPED:
                break
    finally:
        error = engine.error
        engine.close()

    if error is not None:
        click.echo(f"Synchronization stopped: {error}", err=True)
        sys.exit(1)


@cli.command()
@click.option("--timeout", default=120.0, show_default=True, help="Seconds to wait for the sync to settle.")
@click.pass_context
def once(ctx: click.Context, timeout: float) -> None:
    """Run one synchronization and exit when nothing is left to do."""
    cfg = _load_settings(ctx)
    engine = build_engine(cfg)
    engine.start()
    try:
        settled = engine.wait_until_settled(quiet_period=cfg.settle_delay * 4, timeout=timeout)
        _print_status(engine)
        error = engine.error
    finally:
        engine.close()

    if error is not None:
        sys.exit(1)
    if not settled:
        click.echo("Synchronization did not settle before the timeout.", err=True)
        sys.exit(1)


@cli.command()
@click.option("--preview", is_flag=True, help="Gather both sides and list pending actions.")
@click.pass_context
def status(ctx: click.Context, preview: bool) -> None:
    """Show the persisted state, optionally previewing pending actions."""
    cfg = _load_settings(ctx)
    store = InitialSyncStore(cfg.state_file)
    click.echo(f"local directory: {cfg.local_dir}")
    click.echo(f"cloud container: {cfg.cloud_dir / cfg.container_name}")
    click.echo(f"initial sync completed: {'yes' if store.initial_sync_completed else 'no'}")
    if not preview:
        return

    try:
        actions = preview_actions(cfg)
    except SyncError as exc:
        click.echo(f"Error ({exc.kind.value}): {exc.message}", err=True)
        sys.exit(1)

    if not actions:
        click.echo("Everything is in sync.")
        return
    click.echo(f"{len(actions)} pending action(s):")
    for action in actions:
        click.echo(f"  {action}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
