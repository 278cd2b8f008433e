"""
Tests for the Perplexity HTTP client.

HTTP traffic is served by httpx.MockTransport, so no network is needed.
"""

import json

import httpx
import pytest

from perplexity_cli import USER_AGENT
from perplexity_cli.core.client import (
    ChatCompletion,
    PerplexityClient,
    build_messages,
    is_done_line,
    parse_stream_line,
)
from perplexity_cli.core.errors import (
    AuthenticationError,
    ModelUnavailableError,
    NetworkError,
    PerplexityError,
    RateLimitError,
    ServerError,
    TimeoutError,
)


def sse(*events: str) -> bytes:
    return "".join(f"data: {event}\n\n" for event in events).encode("utf-8")


def delta(text: str) -> str:
    return json.dumps({"choices": [{"index": 0, "delta": {"content": text}}]})


def make_client(handler) -> PerplexityClient:
    return PerplexityClient(
        api_key="pplx-test-key",
        base_url="https://api.example.test",
        transport=httpx.MockTransport(handler),
    )


class TestMessages:
    def test_system_and_user_messages(self):
        messages = build_messages("What is 2+2?", "Be precise and concise.")

        assert [(m.role, m.content) for m in messages] == [
            ("system", "Be precise and concise."),
            ("user", "What is 2+2?"),
        ]

    def test_no_system_prompt(self):
        messages = build_messages("hi", None)
        assert [m.role for m in messages] == ["user"]


class TestStreamLineParsing:
    def test_content_delta(self):
        assert parse_stream_line(f"data: {delta('Hel')}") == "Hel"

    def test_data_without_space(self):
        assert parse_stream_line(f"data:{delta('lo')}") == "lo"

    def test_non_data_lines_are_ignored(self):
        assert parse_stream_line("") is None
        assert parse_stream_line(": keep-alive") is None
        assert parse_stream_line("event: message") is None

    def test_undecodable_data_is_skipped(self):
        assert parse_stream_line("data: {broken") is None

    def test_event_without_content(self):
        event = json.dumps({"choices": [{"index": 0, "delta": {"role": "assistant"}}]})
        assert parse_stream_line(f"data: {event}") == ""

    @pytest.mark.parametrize(
        "event",
        [
            {"choices": ["x"]},
            {"choices": [{"delta": "str"}]},
            {"choices": [{"delta": {"content": 5}}]},
            {"choices": {"0": {}}},
        ],
    )
    def test_unexpected_event_shape_has_no_content(self, event):
        assert parse_stream_line(f"data: {json.dumps(event)}") == ""

    def test_done_sentinel(self):
        assert is_done_line("data: [DONE]")
        assert not is_done_line(f"data: {delta('x')}")


class TestUsage:
    def test_total_is_filled_in(self):
        completion = ChatCompletion.model_validate({
            "choices": [],
            "usage": {"prompt_tokens": 5, "completion_tokens": 7},
        })
        assert completion.usage.total_tokens == 12
        assert completion.text == ""


class TestComplete:
    @pytest.mark.asyncio
    async def test_sends_request_and_parses_response(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "id": "abc",
                "model": "sonar",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "4"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 7, "total_tokens": 12},
            })

        async with make_client(handler) as client:
            completion = await client.complete("sonar", build_messages("2+2?", "Be precise and concise."))

        assert completion.text == "4"
        assert completion.usage.total_tokens == 12
        assert seen["url"] == "https://api.example.test/chat/completions"
        assert seen["headers"]["authorization"] == "Bearer pplx-test-key"
        assert seen["headers"]["user-agent"] == USER_AGENT
        assert seen["body"]["model"] == "sonar"
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"][1] == {"role": "user", "content": "2+2?"}

    @pytest.mark.asyncio
    async def test_unauthorized_maps_to_authentication_error(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Invalid API key provided", "type": "invalid_api_key"}})

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError) as exc_info:
                await client.complete("sonar", build_messages("q", None))

        assert exc_info.value.status == 401
        assert "Invalid API key provided" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_bad_model_maps_to_model_unavailable(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Invalid model 'nope'. Permitted models can be found in the documentation."}})

        async with make_client(handler) as client:
            with pytest.raises(ModelUnavailableError) as exc_info:
                await client.complete("nope", build_messages("q", None))

        assert exc_info.value.details["model"] == "nope"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status,error_type", [(429, RateLimitError), (503, ServerError)])
    async def test_status_mapping(self, status, error_type):
        def handler(request):
            return httpx.Response(status, text="try later")

        async with make_client(handler) as client:
            with pytest.raises(error_type) as exc_info:
                await client.complete("sonar", build_messages("q", None))

        assert exc_info.value.message == "try later"

    @pytest.mark.asyncio
    async def test_connection_failure_maps_to_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(NetworkError):
                await client.complete("sonar", build_messages("q", None))

    @pytest.mark.asyncio
    async def test_timeout_maps_to_timeout_error(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TimeoutError):
                await client.complete("sonar", build_messages("q", None))

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        async with make_client(handler) as client:
            with pytest.raises(PerplexityError, match="Unexpected response"):
                await client.complete("sonar", build_messages("q", None))


class TestStream:
    @pytest.mark.asyncio
    async def test_yields_fragments_in_order(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            body = sse(delta("Hel"), delta("lo, "), delta("world"), "[DONE]")
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        async with make_client(handler) as client:
            fragments = [f async for f in client.stream("sonar", build_messages("q", None))]

        assert fragments == ["Hel", "lo, ", "world"]
        assert seen["body"]["stream"] is True

    @pytest.mark.asyncio
    async def test_stops_at_done(self):
        def handler(request):
            body = sse(delta("a"), "[DONE]", delta("ignored"))
            return httpx.Response(200, content=body)

        async with make_client(handler) as client:
            fragments = [f async for f in client.stream("sonar", build_messages("q", None))]

        assert fragments == ["a"]

    @pytest.mark.asyncio
    async def test_skips_noise(self):
        def handler(request):
            body = b": ping\n\n" + sse("{broken", delta(""), delta("ok"))
            return httpx.Response(200, content=body)

        async with make_client(handler) as client:
            fragments = [f async for f in client.stream("sonar", build_messages("q", None))]

        assert fragments == ["ok"]

    @pytest.mark.asyncio
    async def test_error_status(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

        async with make_client(handler) as client:
            with pytest.raises(AuthenticationError):
                async for _ in client.stream("sonar", build_messages("q", None)):
                    pass
