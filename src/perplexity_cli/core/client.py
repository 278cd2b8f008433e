"""
OpenAI-compatible chat-completion client for the Perplexity API.

This module talks to ``POST /chat/completions`` over httpx, either as a
single buffered request or as a Server-Sent Events stream of text deltas.
"""

import json
import logging
from typing import Any, AsyncGenerator, List, Optional

import httpx
from pydantic import BaseModel, ValidationError, model_validator

from .. import USER_AGENT
from ..config.settings import DEFAULT_BASE_URL
from .errors import (
    NetworkError,
    PerplexityError,
    TimeoutError,
    error_for_status,
)

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/chat/completions"


class ChatMessage(BaseModel):
    """OpenAI-compatible message format."""
    role: str
    content: str


class ChatRequest(BaseModel):
    """OpenAI-compatible request format."""
    model: str
    messages: List[ChatMessage]
    stream: bool = False


class Usage(BaseModel):
    """Token usage block of a buffered response."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: Optional[int] = None

    @model_validator(mode="after")
    def _fill_total(self) -> "Usage":
        if self.total_tokens is None:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self


class ChatChoice(BaseModel):
    """OpenAI-compatible choice format."""
    index: int = 0
    message: Optional[ChatMessage] = None
    finish_reason: Optional[str] = None


class ChatCompletion(BaseModel):
    """OpenAI-compatible response format."""
    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = []
    usage: Optional[Usage] = None

    @property
    def text(self) -> str:
        """Content of the first choice, or an empty string."""
        if self.choices and self.choices[0].message:
            return self.choices[0].message.content
        return ""


def build_messages(question: str, system_prompt: Optional[str]) -> List[ChatMessage]:
    """Build the message list for a one-shot question."""
    messages = []
    if system_prompt:
        messages.append(ChatMessage(role="system", content=system_prompt))
    messages.append(ChatMessage(role="user", content=question))
    return messages


def parse_stream_line(line: str) -> Optional[str]:
    """
    Extract the text delta from one Server-Sent Events line.

    Args:
        line: A raw line of the event stream

    Returns:
        The delta text ("" when the event carries none), None for lines that
        are not data events or cannot be decoded
    """
    if not line.startswith("data:"):
        return None

    data = line[5:].strip()
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping undecodable stream line: {data[:80]}")
        return None

    if not isinstance(chunk, dict):
        return None

    choices = chunk.get("choices") or []
    if not choices:
        return ""

    choice = choices[0] if isinstance(choices, list) else None
    delta = choice.get("delta") if isinstance(choice, dict) else None
    if not isinstance(delta, dict):
        return ""

    content = delta.get("content")
    return content if isinstance(content, str) else ""


def is_done_line(line: str) -> bool:
    return line.startswith("data:") and line[5:].strip() == "[DONE]"


class PerplexityClient:
    """Async client for Perplexity's chat-completion endpoint."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: Bearer token sent with every request
            base_url: API root, without the /chat/completions path
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "PerplexityClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Create the HTTP client with proper headers."""
        if self._client is not None:
            return

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )
        logger.debug(f"Initialized Perplexity client for {self.base_url}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def complete(self, model: str, messages: List[ChatMessage]) -> ChatCompletion:
        """Send a buffered chat-completion request."""
        await self.initialize()
        request = ChatRequest(model=model, messages=messages, stream=False)

        try:
            response = await self._client.post(
                CHAT_COMPLETIONS_PATH,
                json=request.model_dump(exclude_none=True)
            )
            await self._raise_for_status(response, model)
            return ChatCompletion.model_validate(response.json())

        except PerplexityError:
            raise
        except (ValidationError, ValueError) as e:
            raise PerplexityError(f"Unexpected response from API: {e}", original_error=e)
        except httpx.TimeoutException as e:
            raise TimeoutError(str(e) or "Request timed out", timeout_seconds=self.timeout, original_error=e)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or "Could not reach the API", original_error=e)

    async def stream(self, model: str, messages: List[ChatMessage]) -> AsyncGenerator[str, None]:
        """
        Send a streaming chat-completion request.

        Yields text fragments in arrival order until the service sends
        ``[DONE]`` or closes the stream. The generator cannot be restarted.
        """
        await self.initialize()
        request = ChatRequest(model=model, messages=messages, stream=True)

        try:
            async with self._client.stream(
                "POST",
                CHAT_COMPLETIONS_PATH,
                json=request.model_dump(exclude_none=True)
            ) as response:
                await self._raise_for_status(response, model)

                async for line in response.aiter_lines():
                    if is_done_line(line):
                        break

                    fragment = parse_stream_line(line)
                    if fragment:
                        yield fragment

        except PerplexityError:
            raise
        except httpx.TimeoutException as e:
            raise TimeoutError(str(e) or "Request timed out", timeout_seconds=self.timeout, original_error=e)
        except httpx.TransportError as e:
            raise NetworkError(str(e) or "Could not reach the API", original_error=e)

    async def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        """Map HTTP error responses to the error taxonomy."""
        if response.is_success:
            return

        await response.aread()
        message = self._extract_error_message(response)
        logger.debug(f"API returned {response.status_code}: {message}")
        raise error_for_status(response.status_code, message, model=model)

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            error: Any = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str):
                return error
            if body.get("detail"):
                return str(body["detail"])

        text = response.text.strip()
        return text or f"HTTP {response.status_code} {response.reason_phrase}"


def create_client(api_key: str, base_url: str = DEFAULT_BASE_URL, timeout: float = 60.0) -> PerplexityClient:
    """Create a Perplexity client with the given configuration."""
    return PerplexityClient(api_key=api_key, base_url=base_url, timeout=timeout)
