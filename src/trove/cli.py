"""Trove CLI."""

import asyncio
import sys
from typing import Optional

import click
import httpx

from .capture import CaptureSession, Capturing, Complete, Error, ExtractionFailed
from .client import TroveClient
from .config import Settings, get_settings
from .errors import TroveError
from .logging_config import setup_colored_logging, setup_server_logging

BAR_WIDTH = 30


def _run_async(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _load_settings(api_url: Optional[str] = None) -> Settings:
    try:
        settings = get_settings()
    except Exception as e:
        click.echo(f"Error loading settings: {e}", err=True)
        sys.exit(1)
    if api_url:
        settings.api_url = api_url
    return settings


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, verbose):
    """Trove - save product links into collections."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command("init-db")
@click.pass_context
def init_db_cmd(ctx):
    """Initialize the database tables and the default collection."""
    from .api.db import init_db

    setup_colored_logging(ctx.obj.get("verbose", False))
    settings = _load_settings()
    _run_async(init_db(settings.db_path, settings.default_collection))
    click.echo(f"Database initialized at {settings.db_path}")


@cli.command()
@click.pass_context
def serve(ctx):
    """Start the Trove API server."""
    import uvicorn

    from .api import create_app

    verbose = ctx.obj.get("verbose", False)
    setup_server_logging(verbose)
    settings = _load_settings()
    if not settings.openai_api_key:
        click.echo("Warning: OPENAI_API_KEY is not set, extraction will fail", err=True)

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning", access_log=verbose)


@cli.command()
@click.argument("url", required=False)
@click.option("--notes", default="", help="Notes to attach in every collection")
@click.option("--collection", "collections", multiple=True, help="Collection id (repeatable)")
@click.option("--api-url", default=None, help="Trove API base URL")
@click.pass_context
def capture(ctx, url, notes, collections, api_url):
    """Capture a product URL and file it into collections.

    The save is requested straight away; it runs as soon as extraction
    finishes. Without --notes or --collection the item goes to the default
    collection.
    """
    setup_colored_logging(ctx.obj.get("verbose", False))
    settings = _load_settings(api_url)

    if not url:
        click.echo("No URL provided.")
        url = click.prompt("Product URL").strip()

    if not notes.strip() and not collections:
        collections = (settings.default_collection.lower(),)

    ok = _run_async(_run_capture(settings, url, notes, list(collections)))
    sys.exit(0 if ok else 1)


async def _run_capture(settings: Settings, url: str, notes: str, collections: list[str]) -> bool:
    errors: list[str] = []
    session = CaptureSession(
        TroveClient(settings),
        settings,
        url=url,
        on_error=errors.append,
        on_validation_error=errors.append,
    )
    session.start()
    session.update_context(notes=notes, selected_collection_ids=collections)
    session.trigger_save()

    waiter = asyncio.create_task(session.wait_until_idle())
    try:
        while not waiter.done():
            _render_progress(session)
            await asyncio.wait({waiter}, timeout=settings.progress_interval)
        _render_progress(session)
        click.echo("")
    finally:
        session.close()

    state = session.state
    if isinstance(state, Complete):
        item = state.item
        click.echo(f"Saved: {item.title or item.source_url}")
        if item.price is not None:
            click.echo(f"  Price:       {item.price} {item.currency or ''}".rstrip())
        if state.collection_ids:
            click.echo(f"  Collections: {', '.join(sorted(state.collection_ids))}")
        if item.needs_review:
            click.secho(
                f"  Needs review: low extraction confidence ({item.confidence_score:.2f})",
                fg="yellow",
            )
        return True

    if isinstance(state, Capturing) and isinstance(state.extraction, ExtractionFailed):
        click.secho(f"Extraction failed: {state.extraction.error}", fg="red", err=True)
        click.echo(f"Retry with: trove capture {url}", err=True)
        return False

    if isinstance(state, Error):
        click.secho(f"Save failed: {state.message}", fg="red", err=True)
        if state.can_retry:
            click.echo(f"Retry with: trove capture {url}", err=True)
        return False

    message = errors[-1] if errors else f"Capture stopped in stage '{state.stage if state else 'none'}'"
    click.secho(message, fg="red", err=True)
    return False


def _render_progress(session: CaptureSession) -> None:
    simulator = session.progress
    filled = int(BAR_WIDTH * simulator.progress / 100)
    bar = "#" * filled + "-" * (BAR_WIDTH - filled)
    if simulator.failed:
        suffix = "failed"
    elif simulator.stalled:
        suffix = "still working..."
    else:
        suffix = session.state.stage if session.state else ""
    click.echo(f"\r[{bar}] {simulator.progress:5.1f}% {suffix:<18}", nl=False)


@cli.command()
@click.option("--api-url", default=None, help="Trove API base URL")
@click.pass_context
def collections(ctx, api_url):
    """List collections and their ids."""
    setup_colored_logging(ctx.obj.get("verbose", False))
    settings = _load_settings(api_url)

    try:
        rows = _run_async(TroveClient(settings).list_collections())
    except (TroveError, httpx.HTTPError) as e:
        click.echo(f"Could not list collections: {e}", err=True)
        sys.exit(1)

    if not rows:
        click.echo("No collections found.")
        return

    click.echo(f"{'Id':<34} {'Name':<24} {'Items':<6}")
    click.echo("-" * 66)
    for row in rows:
        marker = " (default)" if row.get("is_default") else ""
        click.echo(f"{row['id']:<34} {row['name'] + marker:<24} {row.get('item_count', 0):<6}")


if __name__ == "__main__":
    cli()
