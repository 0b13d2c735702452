"""
Docs builder — CLI entrypoint.

Usage:
    python -m docbuilder.main --help
    python -m docbuilder.main index update
    python -m docbuilder.main worker start
"""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path

import click

from docbuilder import __version__
from docbuilder.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="docbuilder")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to docbuilder.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Docs builder — queue and build package documentation."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("DOCBUILDER_LOG_FILE"),
        log_file_level=os.environ.get("DOCBUILDER_LOG_FILE_LEVEL"),
    )


def _options(ctx: click.Context):
    from docbuilder.core.config.loader import ConfigError, load_options

    try:
        return load_options(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def _builder(ctx: click.Context):
    """Build the component graph once per invocation."""
    if "builder" not in ctx.obj:
        from docbuilder.core.services.docs_builder import DocsBuilder

        builder = DocsBuilder(_options(ctx))
        ctx.obj["builder"] = builder
        ctx.call_on_close(builder.close)
    return ctx.obj["builder"]


def _queue(ctx: click.Context):
    from docbuilder.core.persistence import BuildQueue, connect

    conn = connect(_options(ctx).database_path)
    ctx.call_on_close(conn.close)
    return BuildQueue(conn)


def _start(builder) -> None:
    from docbuilder.core.config.loader import ConfigError

    try:
        builder.start()
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


# ── Database ────────────────────────────────────────────────────


@cli.group()
def database() -> None:
    """Builder database commands."""


@database.command("init")
@click.pass_context
def database_init(ctx: click.Context) -> None:
    """Create the database schema."""
    from docbuilder.core.persistence import connect

    path = _options(ctx).database_path
    connect(path).close()
    click.secho(f"✅ Database ready at {path}", fg="green")


# ── Queue ───────────────────────────────────────────────────────


@cli.group()
def queue() -> None:
    """Build queue commands."""


@queue.command("add")
@click.argument("name")
@click.argument("version")
@click.option("--priority", "-p", type=int, default=5, show_default=True, help="Lower builds sooner.")
@click.pass_context
def queue_add(ctx: click.Context, name: str, version: str, priority: int) -> None:
    """Add a package version to the build queue."""
    if _queue(ctx).enqueue(name, version, priority):
        click.secho(f"✅ {name}-{version} queued (priority {priority})", fg="green")
    else:
        click.secho(f"⚠️  {name}-{version} is already queued", fg="yellow")


@queue.command("count")
@click.pass_context
def queue_count(ctx: click.Context) -> None:
    """Print the number of packages waiting to be built."""
    click.echo(_queue(ctx).count_eligible())


@queue.command("list")
@click.pass_context
def queue_list(ctx: click.Context) -> None:
    """List queued packages in build order."""
    entries = _queue(ctx).list_entries()
    if not entries:
        if not ctx.obj.get("quiet"):
            click.echo("Queue is empty")
        return
    for entry in entries:
        marker = "" if entry.eligible else "  (gave up)"
        click.echo(
            f"{entry.id:>6}  {entry.identity:<40} priority={entry.priority} attempt={entry.attempt}{marker}"
        )


# ── Index ───────────────────────────────────────────────────────


@cli.group()
def index() -> None:
    """Registry index commands."""


@index.command("update")
@click.pass_context
def index_update(ctx: click.Context) -> None:
    """Fetch the registry index and queue new releases."""
    from docbuilder.adapters.base import CommandError

    builder = _builder(ctx)
    try:
        added = builder.enqueuer.update()
    except CommandError as e:
        click.secho(f"❌ Index update failed: {e}", fg="red", err=True)
        sys.exit(1)
    click.echo(f"{added} releases queued, {builder.queue.count_eligible()} waiting")


# ── Worker ──────────────────────────────────────────────────────


@cli.group()
def worker() -> None:
    """Queue worker commands."""


@worker.command("run-once")
@click.pass_context
def worker_run_once(ctx: click.Context) -> None:
    """Build the next package from the queue."""
    builder = _builder(ctx)
    _start(builder)
    if builder.worker.run_once():
        builder.pipeline.save_cache()
    elif not ctx.obj.get("quiet"):
        click.echo("Nothing to build")


@worker.command("start")
@click.option("--poll-interval", type=float, default=60.0, show_default=True, help="Seconds between empty polls.")
@click.pass_context
def worker_start(ctx: click.Context, poll_interval: float) -> None:
    """Build queued packages until interrupted."""
    builder = _builder(ctx)
    _start(builder)
    stop = threading.Event()
    try:
        builder.worker.run(poll_interval=poll_interval, stop_event=stop)
    except KeyboardInterrupt:
        stop.set()
        click.echo("\nStopping worker")
    finally:
        builder.pipeline.save_cache()


@worker.command("lock")
@click.pass_context
def worker_lock(ctx: click.Context) -> None:
    """Pause queue building."""
    from docbuilder.core.persistence import QueueLock

    QueueLock(_options(ctx).lock_path).lock()
    click.secho("🔒 Build queue locked", fg="yellow")


@worker.command("unlock")
@click.pass_context
def worker_unlock(ctx: click.Context) -> None:
    """Resume queue building."""
    from docbuilder.core.persistence import QueueLock

    QueueLock(_options(ctx).lock_path).unlock()
    click.secho("🔓 Build queue unlocked", fg="green")


# ── Build ───────────────────────────────────────────────────────


@cli.group()
def build() -> None:
    """Direct build commands (bypass the queue)."""


@build.command("crate")
@click.argument("name")
@click.argument("version")
@click.pass_context
def build_crate(ctx: click.Context, name: str, version: str) -> None:
    """Build documentation for one package version."""
    builder = _builder(ctx)
    _start(builder)
    successful = builder.pipeline.build_package(name, version)
    builder.pipeline.save_cache()
    if successful:
        click.secho(f"✅ Built {name}-{version}", fg="green")
    else:
        click.secho(f"❌ Build of {name}-{version} failed or was skipped", fg="red")
        sys.exit(1)


@build.command("world")
@click.pass_context
def build_world(ctx: click.Context) -> None:
    """Build every release in the registry index."""
    builder = _builder(ctx)
    _start(builder)
    built = builder.pipeline.build_world(builder.index.crates())
    click.echo(f"{built} packages built")


@build.command("add-essential-files")
@click.pass_context
def build_add_essential_files(ctx: click.Context) -> None:
    """Republish the toolchain's shared documentation assets."""
    from docbuilder.core.services.essential_files import EssentialFilesError
    from docbuilder.core.services.toolchain import ToolchainError

    builder = _builder(ctx)
    try:
        stored = builder.add_essential_files()
    except (EssentialFilesError, ToolchainError) as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)
    click.secho(f"✅ Stored {len(stored)} essential files", fg="green")


if __name__ == "__main__":
    cli()
