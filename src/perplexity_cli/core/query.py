"""
Query execution for Perplexity CLI.

A query is recorded in the history, sent to the API either as one buffered
request or as a stream of text fragments, rendered to the console and
optionally saved to a file. Errors from the API end the query; they are
rendered here and reported through the returned ``QueryResult``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set

from rich.console import Console
from rich.markup import escape

from ..config.settings import DEFAULT_SYSTEM_PROMPT
from ..config.store import ConfigStore
from .client import ChatMessage, PerplexityClient, Usage, build_messages
from .errors import FileWriteError, PerplexityCliError, PerplexityError, hint_for_error
from .history import HistoryRecorder
from .models import DEFAULT_MODEL

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], PerplexityClient]


class StreamState(Enum):
    """Lifecycle of a single query."""
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: Dict[StreamState, Set[StreamState]] = {
    StreamState.IDLE: {StreamState.REQUESTING, StreamState.FAILED},
    StreamState.REQUESTING: {StreamState.STREAMING, StreamState.COMPLETED, StreamState.FAILED},
    StreamState.STREAMING: {StreamState.COMPLETED, StreamState.FAILED},
    StreamState.COMPLETED: set(),
    StreamState.FAILED: set(),
}


@dataclass(frozen=True)
class QueryRequest:
    """A question to send, built from the command-line arguments."""
    question: str
    model: str = DEFAULT_MODEL
    stream: bool = False
    output_file: Optional[Path] = None


@dataclass
class QueryResult:
    """Outcome of a query."""
    text: str = ""
    usage: Optional[Usage] = None
    streamed: bool = False
    state: StreamState = StreamState.IDLE
    error: Optional[PerplexityCliError] = None
    saved_to: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return self.state is StreamState.COMPLETED and self.error is None

    def advance(self, state: StreamState) -> None:
        """Move to the next lifecycle state."""
        if state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Invalid query state transition: {self.state.value} -> {state.value}")
        logger.debug(f"Query state {self.state.value} -> {state.value}")
        self.state = state


class QueryExecutor:
    """Sends one question to the API and renders the answer."""

    def __init__(
        self,
        store: ConfigStore,
        client_factory: ClientFactory,
        console: Optional[Console] = None,
        system_prompt: Optional[str] = DEFAULT_SYSTEM_PROMPT,
        history: Optional[HistoryRecorder] = None,
    ):
        """Initialize the executor.

        Args:
            store: Config store the query history is written to
            client_factory: Builds an API client from an API key
            console: Rich console used for output
            system_prompt: System message sent ahead of the question
            history: History recorder, defaults to one over ``store``
        """
        self.store = store
        self.client_factory = client_factory
        self.console = console or Console()
        self.system_prompt = system_prompt
        self.history = history or HistoryRecorder(store)

    async def execute(self, request: QueryRequest, api_key: str) -> QueryResult:
        """Run a query end to end."""
        self.history.record(request.question, request.model)

        result = QueryResult(streamed=request.stream)
        messages = build_messages(request.question, self.system_prompt)

        try:
            async with self.client_factory(api_key) as client:
                if request.stream:
                    await self._run_streaming(client, request, messages, result)
                else:
                    await self._run_single(client, request, messages, result)

        except PerplexityError as e:
            logger.debug(f"Query failed: {e.to_dict()}")
            if result.streamed and result.text:
                self.console.print()
            result.error = e
            result.advance(StreamState.FAILED)
            self._render_error(e, request.model)
            return result

        if request.output_file:
            self._save_output(result, request.output_file)

        return result

    async def _run_single(
        self,
        client: Any,
        request: QueryRequest,
        messages: List[ChatMessage],
        result: QueryResult,
    ) -> None:
        result.advance(StreamState.REQUESTING)
        with self.console.status("[dim]Thinking...[/dim]"):
            completion = await client.complete(request.model, messages)

        result.text = completion.text
        result.usage = completion.usage
        result.advance(StreamState.COMPLETED)

        self.console.print("\n[cyan]📝 Response:[/cyan]")
        self.console.print(result.text, markup=False, highlight=False, emoji=False, soft_wrap=True)

        if result.usage:
            usage = result.usage
            self.console.print(
                f"\n[dim]Tokens used:[/dim] [yellow]{usage.prompt_tokens} prompt + "
                f"{usage.completion_tokens} completion = {usage.total_tokens} total[/yellow]"
            )

    async def _run_streaming(
        self,
        client: Any,
        request: QueryRequest,
        messages: List[ChatMessage],
        result: QueryResult,
    ) -> None:
        self.console.print("[cyan]📝 Streaming response:[/cyan]")
        result.advance(StreamState.REQUESTING)

        async for fragment in client.stream(request.model, messages):
            if result.state is StreamState.REQUESTING:
                result.advance(StreamState.STREAMING)
            self.console.print(fragment, end="", markup=False, highlight=False, emoji=False, soft_wrap=True)
            result.text += fragment

        self.console.print()
        result.advance(StreamState.COMPLETED)

    def _save_output(self, result: QueryResult, path: Path) -> None:
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(result.text)
        except OSError as e:
            result.error = FileWriteError(path, original_error=e)
            logger.error(result.error.message)
            self.console.print(f"[red]✗ {escape(result.error.message)}[/red]")
            return

        result.saved_to = Path(path)
        self.console.print(f"\n[green]✓ Response saved to {escape(str(path))}[/green]")

    def _render_error(self, error: PerplexityError, model: str) -> None:
        self.console.print(f"[red]✗ Error:[/red] {escape(str(error))}")
        hint = hint_for_error(error, model)
        if hint:
            self.console.print(f"[yellow]{escape(hint)}[/yellow]")
