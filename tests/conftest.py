"""Shared fixtures for Perplexity CLI tests."""

from io import StringIO
from typing import List, Optional

import pytest
from rich.console import Console

from perplexity_cli.config.store import InMemoryConfigStore
from perplexity_cli.core.client import ChatCompletion


class FakeClient:
    """Stand-in for PerplexityClient that records calls instead of using HTTP."""

    def __init__(
        self,
        fragments: Optional[List[str]] = None,
        completion: Optional[dict] = None,
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
    ):
        self.fragments = fragments or []
        self.completion = completion
        self.error = error
        self.fail_after = fail_after
        self.calls = []
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def complete(self, model, messages):
        self.calls.append(("complete", model, messages))
        if self.error:
            raise self.error
        return ChatCompletion.model_validate(self.completion)

    async def stream(self, model, messages):
        self.calls.append(("stream", model, messages))
        for index, fragment in enumerate(self.fragments):
            if self.error and self.fail_after == index:
                raise self.error
            yield fragment
        if self.error and self.fail_after is None:
            raise self.error


def make_completion(text: str, usage: Optional[dict] = None) -> dict:
    completion = {
        "id": "cmpl-1",
        "model": "sonar",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
    }
    if usage is not None:
        completion["usage"] = usage
    return completion


@pytest.fixture
def memory_store():
    return InMemoryConfigStore()


@pytest.fixture
def output():
    return StringIO()


@pytest.fixture
def console(output):
    return Console(file=output, width=200, color_system=None)


@pytest.fixture
def fake_client():
    """The FakeClient class, for building clients with canned behaviour."""
    return FakeClient


@pytest.fixture
def completion_payload():
    """Builder for buffered chat-completion response bodies."""
    return make_completion
