"""
CLI entry point for chatkeep: inspect and maintain stored chat sessions.
"""

import json
import sys
from datetime import UTC, datetime
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

try:
    from importlib.metadata import version as pkg_version

    _version = pkg_version("chatkeep")
except Exception:
    _version = "0.1.0"

from chatkeep.core.config import StoreConfig, StoreConfigError, load_store_config
from chatkeep.core.session_store import SessionStore, SessionWriteError
from chatkeep.models.session import SessionSummary

console = Console()
console_err = Console(stderr=True)


def _format_relative_time(dt: datetime) -> str:
    """Format a timestamp as a relative time string."""
    diff = (datetime.now(UTC) - dt).total_seconds()
    minutes = int(diff // 60)
    hours = int(diff // 3600)
    days = int(diff // 86400)

    if minutes < 1:
        return "now"
    if minutes < 60:
        return f"{minutes}m"
    if hours < 24:
        return f"{hours}h"
    if days < 7:
        return f"{days}d"
    return dt.strftime("%b %d")


def _get_store(ctx: click.Context) -> SessionStore:
    return ctx.obj["store"]


def _print_summaries(summaries: list[SessionSummary], title: str, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json", by_alias=True) for s in summaries], indent=2))
        return

    if not summaries:
        console.print("[dim]No sessions found.[/dim]")
        return

    table = Table(title=title)
    table.add_column("ID", style="bright_black")
    table.add_column("Title", style="cyan", ratio=1)
    table.add_column("Messages", justify="right")
    table.add_column("Updated", style="grey62")
    for s in summaries:
        table.add_row(s.id, escape(s.title), str(s.message_count), _format_relative_time(s.updated_at))
    console.print(table)


def _not_found(session_id: str) -> None:
    console_err.print(f"[red]Session not found:[/red] {escape(session_id)}")
    sys.exit(1)


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=_version, prog_name="chatkeep")
@click.option("--debug", is_flag=True, hidden=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file (default: ./chatkeep.yaml)",
)
@click.option(
    "--sessions-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding session records",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: Path | None, sessions_dir: Path | None):
    """
    Chatkeep: persistent chat session storage.

    \b
        chatkeep new --title "Trip ideas"
        chatkeep say <id> --content "Where should I go?"
        chatkeep list
        chatkeep search paris
        chatkeep cleanup --days 30
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")

    try:
        config = load_store_config(config_path)
    except StoreConfigError as e:
        console_err.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)

    if sessions_dir is not None:
        config = config.model_copy(update={"sessions_dir": sessions_dir})

    ctx.obj["config"] = config
    ctx.obj["store"] = config.create_store()


# =============================================================================
# Session Commands
# =============================================================================


@cli.command()
@click.option("--title", "-t", default=None, help="Session title (default: derived from the first message)")
@click.pass_context
def new(ctx: click.Context, title: str | None):
    """Create a new, empty session."""
    store = _get_store(ctx)
    try:
        session = store.create_session(title)
    except SessionWriteError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Created session [cyan]{session.id}[/cyan]")


@cli.command("show")
@click.argument("session_id")
@click.option("--json", "as_json", is_flag=True, help="Output the full record as JSON")
@click.pass_context
def show(ctx: click.Context, session_id: str, as_json: bool):
    """Show a session and its messages."""
    store = _get_store(ctx)
    session = store.load_session(session_id)
    if session is None:
        _not_found(session_id)

    if as_json:
        click.echo(session.to_record())
        return

    console.print(f"[bold]{escape(session.title)}[/bold]")
    console.print(
        f"[dim]{session.id} · {session.message_count} message(s) · "
        f"updated {session.updated_at.strftime('%Y-%m-%d %H:%M')}[/dim]"
    )
    console.print()
    for msg in session.messages:
        style = "green" if msg.role == "user" else "blue"
        console.print(f"[{style}]{msg.role}:[/{style}] {escape(msg.content)}")
        if msg.type == "image":
            console.print(f"  [dim]image: {escape(msg.image_url or '')}[/dim]")


@cli.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, as_json: bool):
    """List sessions, most recently updated first."""
    store = _get_store(ctx)
    _print_summaries(store.list_summaries(), "Sessions", as_json)


@cli.command()
@click.argument("query")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def search(ctx: click.Context, query: str, as_json: bool):
    """Find sessions whose title or messages contain QUERY."""
    store = _get_store(ctx)
    if not query.strip():
        _print_summaries([], "Search results", as_json)
        return
    _print_summaries(store.search_summaries(query), f"Sessions matching '{escape(query)}'", as_json)


@cli.command()
@click.argument("session_id")
@click.option("--content", "-c", required=True, help="Message text")
@click.option(
    "--role",
    "-r",
    type=click.Choice(["user", "assistant"]),
    default="user",
    show_default=True,
    help="Message author",
)
@click.option(
    "--type",
    "message_type",
    type=click.Choice(["text", "image"]),
    default="text",
    show_default=True,
    help="Message type",
)
@click.option("--image-url", default=None, help="Image location (image messages only)")
@click.option("--thumbnail-url", default=None, help="Thumbnail location (image messages only)")
@click.pass_context
def say(
    ctx: click.Context,
    session_id: str,
    content: str,
    role: str,
    message_type: str,
    image_url: str | None,
    thumbnail_url: str | None,
):
    """Append a message to a session."""
    store = _get_store(ctx)
    message = {"role": role, "content": content, "type": message_type}
    if image_url:
        message["image_url"] = image_url
    if thumbnail_url:
        message["thumbnail_url"] = thumbnail_url

    try:
        session = store.append_message(session_id, message)
    except ValidationError as e:
        issues = "; ".join(err["msg"] for err in e.errors())
        raise click.UsageError(issues) from e
    except SessionWriteError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if session is None:
        _not_found(session_id)

    console.print(
        f"[green]✓[/green] Added message {session.message_count} to "
        f"[cyan]{escape(session.title)}[/cyan]"
    )


@cli.command()
@click.argument("session_id")
@click.pass_context
def delete(ctx: click.Context, session_id: str):
    """Delete a session permanently."""
    store = _get_store(ctx)
    if store.delete_session(session_id):
        console.print(f"[green]✓[/green] Deleted {escape(session_id)}")
    else:
        _not_found(session_id)


@cli.command()
@click.option("--days", "-d", type=click.IntRange(min=0), default=None, help="Age threshold (default: configured retention)")
@click.pass_context
def cleanup(ctx: click.Context, days: int | None):
    """Delete sessions not updated within the retention period."""
    store = _get_store(ctx)
    config: StoreConfig = ctx.obj["config"]
    max_age = config.retention_days if days is None else days

    count = store.cleanup(max_age)
    console.print(f"[green]✓[/green] Removed {count} session(s) older than {max_age} day(s)")


@cli.command()
@click.argument("session_id")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["markdown", "json"]),
    default="markdown",
    show_default=True,
    help="Export format",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write to file instead of stdout")
@click.pass_context
def export(ctx: click.Context, session_id: str, fmt: str, output: Path | None):
    """Export a session transcript."""
    store = _get_store(ctx)
    text = store.export_session(session_id, fmt=fmt)
    if text is None:
        _not_found(session_id)

    if output is None:
        click.echo(text)
        return

    output.write_text(text + "\n")
    console_err.print(f"[green]✓[/green] Exported to {escape(str(output))}")


if __name__ == "__main__":
    cli()
