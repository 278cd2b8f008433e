"""
Main CLI application entry point.

This module contains the main Typer application and command handlers
for Perplexity CLI.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional
import asyncio
import logging

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from perplexity_cli import VERSION
from perplexity_cli.config.settings import PerplexityCliSettings, get_settings
from perplexity_cli.config.store import ConfigStore, JsonConfigStore, mask_api_key
from perplexity_cli.core.client import create_client
from perplexity_cli.core.errors import MissingCredentialError, classify_error, hint_for_error
from perplexity_cli.core.history import HistoryRecorder
from perplexity_cli.core.models import KNOWN_MODELS, get_known_model_names
from perplexity_cli.core.query import QueryExecutor, QueryRequest, QueryResult

logger = logging.getLogger(__name__)

# Create the main Typer application
app = typer.Typer(
    name="perplexity-cli",
    help="A CLI tool to interact with the Perplexity API",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Rich console for output
console = Console()


def get_store(settings: Optional[PerplexityCliSettings] = None) -> ConfigStore:
    """Open the config store holding the API key and query history."""
    settings = settings or get_settings()
    return JsonConfigStore(settings.config_file_path)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(name)s:%(levelname)s:%(message)s",
    )


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        console.print(f"[bold blue]Perplexity CLI[/bold blue] version [green]{VERSION}[/green]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
) -> None:
    """
    Perplexity CLI - ask the Perplexity API from your terminal.

    Store your API key once with set-key, then send questions with query.
    """
    try:
        settings = get_settings()
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid settings: {escape(str(e))}")
        raise typer.Exit(1)

    configure_logging("DEBUG" if debug else settings.effective_log_level)


def _print_missing_key(error: MissingCredentialError) -> None:
    console.print(f"[red]✗ {escape(error.message)}[/red]")


def _require_api_key(store: ConfigStore) -> str:
    api_key = store.load().api_key
    if not api_key:
        raise MissingCredentialError()
    return api_key


@app.command("set-key")
def set_key_command(
    key: str = typer.Argument(..., help="Perplexity API key"),
) -> None:
    """Set the Perplexity API key."""
    key = key.strip()
    if not key:
        console.print("[red]✗ API key must not be empty.[/red]")
        raise typer.Exit(1)

    store = get_store()
    config = store.load()
    config.api_key = key

    if not store.save(config):
        console.print(f"[red]✗ Error saving config file:[/red] {escape(str(store.last_error))}")
        raise typer.Exit(1)

    console.print("[green]✓ API key set successfully.[/green]")


@app.command("view-key")
def view_key_command() -> None:
    """View the currently set API key (masked)."""
    try:
        api_key = _require_api_key(get_store())
    except MissingCredentialError as e:
        _print_missing_key(e)
        raise typer.Exit(1)

    console.print(f"[blue]Current API key:[/blue] [yellow]{escape(mask_api_key(api_key))}[/yellow]")


@app.command("clear-key")
def clear_key_command() -> None:
    """Clear the stored API key."""
    store = get_store()
    config = store.load()
    config.api_key = None

    if not store.save(config):
        console.print(f"[red]✗ Error saving config file:[/red] {escape(str(store.last_error))}")
        raise typer.Exit(1)

    console.print("[green]✓ API key cleared successfully.[/green]")


@app.command("query")
def query_command(
    question: str = typer.Argument(..., help="Question to send"),
    model: Optional[str] = typer.Option(
        None, "--model", "-m",
        help=f"Model to use (default: sonar). Known: {', '.join(get_known_model_names())}",
    ),
    stream: bool = typer.Option(False, "--stream", "-s", help="Stream the response as it is generated"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the response to a file"),
) -> None:
    """Send a query to the Perplexity API."""
    settings = get_settings()
    store = get_store(settings)

    try:
        api_key = _require_api_key(store)
    except MissingCredentialError as e:
        _print_missing_key(e)
        raise typer.Exit(1)

    request = QueryRequest(
        question=question,
        model=model or settings.default_model,
        stream=stream,
        output_file=output,
    )

    try:
        result = asyncio.run(_async_query_command(settings, store, request, api_key))
    except Exception as e:
        logger.debug("Unexpected query failure", exc_info=True)
        error = classify_error(e)
        if request.stream:
            console.print()
        console.print(f"[red]✗ Error:[/red] {escape(str(error))}")
        hint = hint_for_error(error, request.model)
        if hint:
            console.print(f"[yellow]{escape(hint)}[/yellow]")
        raise typer.Exit(1)

    if not result.ok:
        raise typer.Exit(1)


async def _async_query_command(
    settings: PerplexityCliSettings,
    store: ConfigStore,
    request: QueryRequest,
    api_key: str,
) -> QueryResult:
    """Async implementation of query command."""
    executor = QueryExecutor(
        store=store,
        client_factory=lambda key: create_client(key, base_url=settings.base_url, timeout=settings.timeout),
        console=console,
        system_prompt=settings.system_prompt,
    )
    return await executor.execute(request, api_key)


@app.command("models")
def models_command() -> None:
    """List available Perplexity API models."""
    console.print("[cyan]Available Perplexity Models:[/cyan]")
    for name, description in KNOWN_MODELS:
        console.print(f"[yellow]- {name}[/yellow] [dim]({escape(description)})[/dim]")

    console.print('\n[dim]Use with: perplexity-cli query "Your question" --model model-name[/dim]')


def _format_timestamp(timestamp: int) -> str:
    try:
        return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, OverflowError, OSError):
        # Out-of-range values from a hand-edited config file
        return str(timestamp)


@app.command("history")
def history_command() -> None:
    """View history of recent queries."""
    records = HistoryRecorder(get_store()).recent()

    if not records:
        console.print("[yellow]No query history found.[/yellow]")
        return

    console.print("[cyan]Recent Queries:[/cyan]")
    for index, record in enumerate(records, start=1):
        date = _format_timestamp(record.timestamp)
        console.print(f"{index}. {escape(record.question)}")
        console.print(f"[dim]   Date: {date}[/dim]")
        console.print(f"[dim]   Model: {escape(record.model)}[/dim]")
        console.print()


def main() -> None:
    """Entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
