"""CLI commands for Pagecraft."""

import asyncio
import os
import sys
from pathlib import Path
from uuid import UUID

import click

from pagecraft.config import get_settings


@click.group()
@click.version_option(package_name="pagecraft")
def cli():
    """Pagecraft - page composition and versioning service."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the designer API server."""
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "pagecraft.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from pagecraft.asgi import app

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


def _run_alembic(args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    package_dir = Path(__file__).parent

    alembic_ini = Path.cwd() / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = package_dir / "alembic.ini"
        if not alembic_ini.exists():
            click.echo("Error: Could not find alembic.ini", err=True)
            sys.exit(1)

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(package_dir / "alembic"))

    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        pagecraft db upgrade head     # Apply all migrations
        pagecraft db downgrade -1     # Rollback one migration
        pagecraft db current          # Show current revision
        pagecraft db history          # Show migration history
    """
    args = ctx.args
    if not args:
        click.echo(ctx.get_help())
        return

    _run_alembic(args)


async def _with_session(fn):
    from pagecraft.db.session import create_engine, create_session_maker

    engine = create_engine(get_settings())
    try:
        async with create_session_maker(engine)() as db_session:
            return await fn(db_session)
    finally:
        await engine.dispose()


@cli.command()
@click.argument("page_id", type=click.UUID)
@click.option("--limit", default=None, type=int, help="Show at most this many versions")
def versions(page_id: UUID, limit: int | None):
    """List the stored versions of a page, newest first."""
    from pagecraft.db.services import version_service

    async def run(db_session):
        return await version_service.list_versions(db_session, page_id, limit=limit)

    rows = asyncio.run(_with_session(run))
    if not rows:
        click.echo("No versions.")
        return

    for version in rows:
        flag = "*" if version.is_published else " "
        notes = version.change_notes or ""
        created = version.created_at.strftime("%Y-%m-%d %H:%M") if version.created_at else "-"
        click.echo(f"{flag} {version.version_number:>4}  {created}  {version.created_by or '-':<20} {notes}")


@cli.command()
@click.argument("page_id", type=click.UUID)
@click.argument("version_number", type=int)
@click.option("--user", "user_id", default=None, help="User id recorded on the restore")
def restore(page_id: UUID, version_number: int, user_id: str | None):
    """Restore a page to a stored version."""
    from pagecraft.db.services import version_service
    from pagecraft.lib.errors import PagecraftError

    async def run(db_session):
        return await version_service.restore_version(
            db_session, page_id, version_number, user_id=user_id or os.environ.get("USER")
        )

    try:
        result = asyncio.run(_with_session(run))
    except PagecraftError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    changes = result.changes
    click.echo(
        f"Restored version {result.restored_from} as version {result.version.version_number}: "
        f"{len(changes.updated) + len(changes.revived)} kept, "
        f"{len(changes.created)} recreated, {len(changes.deleted)} removed"
    )
    for warning in result.forest.warnings:
        click.echo(f"Warning: {warning.key} has {warning.reason}", err=True)
