"""CLI commands for layerctx."""

import asyncio
import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from layerctx import __logo__, __version__

app = typer.Typer(
    name="layerctx",
    help=f"{__logo__} layerctx - Layered context compaction for LLM agents",
    no_args_is_help=True,
)

console = Console()


def _load_config(config_path: Path | None):
    from layerctx.config.loader import load_config

    return load_config(config_path)


def _read_history(path: Path) -> list[dict]:
    """Read a message list from a JSON file (a list, or an object with ``messages``)."""
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(1)

    if isinstance(data, dict):
        data = data.get("messages", [])
    if not isinstance(data, list) or not all(isinstance(m, dict) and "role" in m for m in data):
        console.print(f"[red]{path} must contain a list of messages with a 'role'[/red]")
        raise typer.Exit(1)
    return data


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} layerctx v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """layerctx - Layered context compaction for LLM agents."""
    pass


# ============================================================================
# Compaction
# ============================================================================


@app.command()
def compact(
    history_file: Path = typer.Argument(..., help="JSON file with the conversation"),
    query: str = typer.Option("", "--query", "-q", help="Current user question"),
    session: str = typer.Option("cli:default", "--session", "-s", help="Session key"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    max_prompt_tokens: int = typer.Option(None, "--max-tokens", help="Override prompt budget"),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON"),
):
    """Compact a conversation and report what the model would receive."""
    from layerctx.factory import build_manager

    config = _load_config(config_path)
    layered = config.context
    if max_prompt_tokens is not None:
        layered = layered.model_copy(update={"max_prompt_tokens": max_prompt_tokens})

    messages = _read_history(history_file)
    platform, _, chat_id = session.partition(":")
    manager = build_manager(config)
    try:
        result = asyncio.run(
            manager.apply(session, platform, chat_id or None, query, messages, layered)
        )
    finally:
        manager.close()

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=str))
        return

    decision = result.retrieval.decision
    usage = result.prompt_usage

    table = Table(title=f"Compaction of {history_file.name}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Applied", "[green]yes[/green]" if result.applied else "[dim]no[/dim]")
    table.add_row("Reached layer", decision.reached_layer)
    table.add_row("Query mode", decision.query_mode)
    table.add_row("Reason", decision.reason)
    table.add_row("Archived messages", str(result.archived_message_count))
    table.add_row("Archives used", ", ".join(decision.selected_archive_ids) or "-")
    table.add_row("Prompt tokens", f"{usage.before} -> {usage.after} ({usage.savings_ratio:.1%} saved)")
    if result.truncated_messages:
        table.add_row("Truncated", f"[yellow]{result.truncated_messages} message(s)[/yellow]")
    if result.fallback_events:
        table.add_row("Fallbacks", "\n".join(result.fallback_events))
    console.print(table)


# ============================================================================
# Archives
# ============================================================================


def _open_store(config_path: Path | None):
    from layerctx.session.store import SessionStore

    config = _load_config(config_path)
    if config.storage_path is None:
        console.print("[yellow]Archive persistence is disabled (storage.persist = false).[/yellow]")
        raise typer.Exit(1)
    return SessionStore(config.storage_path)


@app.command()
def archives(
    session_key: str = typer.Argument(None, help="Session key; omit to list sessions"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """List persisted sessions, or the archives of one session."""
    store = _open_store(config_path)

    if not session_key:
        keys = store.list_keys()
        if not keys:
            console.print("No persisted sessions.")
            return
        for key in keys:
            console.print(key)
        return

    ctx = store.get(session_key)
    if ctx is None or not ctx.archives:
        console.print(f"No archives for {session_key}.")
        return

    table = Table(title=f"Archives of {session_key} (boundary {ctx.archived_until})")
    table.add_column("ID", style="cyan")
    table.add_column("Messages")
    table.add_column("Summary")
    table.add_column("Abstract")
    for record in ctx.archives:
        summary = "[yellow]fallback[/yellow]" if record.summary_fallback_used else "ok"
        table.add_row(
            record.id,
            f"{record.chunk_start + 1}-{record.chunk_end}",
            summary,
            record.abstract_text,
        )
    console.print(table)


@app.command()
def clear(
    session_key: str = typer.Argument(..., help="Session key to forget"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Delete the persisted archives of a session."""
    store = _open_store(config_path)
    if store.clear(session_key):
        console.print(f"[green]✓[/green] Cleared archives of {session_key}")
    else:
        console.print(f"No archives for {session_key}.")


# ============================================================================
# Config
# ============================================================================


@app.command("config")
def show_config(
    config_path: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show the effective configuration."""
    from layerctx.config.loader import convert_to_camel, get_config_path

    config = _load_config(config_path)
    data = convert_to_camel(config.model_dump(mode="json"))
    for provider in data.get("providers", {}).values():
        if provider.get("apiKey"):
            provider["apiKey"] = "***"
    console.print(f"[dim]{config_path or get_config_path()}[/dim]")
    console.print_json(json.dumps(data))


if __name__ == "__main__":
    app()
