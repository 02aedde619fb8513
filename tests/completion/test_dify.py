# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the Dify completion gateway."""

import json

import httpx
import pytest

from difyrelay.completion import (
    BackendError,
    CompletionError,
    CompletionResult,
    DifyCompletionGateway,
    TransportError,
)
from difyrelay.completion.config import DifyConfig


def _make_gateway(handler, **config_kwargs) -> DifyCompletionGateway:
    config = DifyConfig(api_key="app-secret-key", **config_kwargs)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return DifyCompletionGateway(config, client=client)


class TestDifyConfig:
    def test_defaults(self) -> None:
        config = DifyConfig(api_key="app-key")

        assert config.base_url == "https://api.dify.ai"
        assert config.timeout_seconds == 60.0

    def test_api_key_required(self) -> None:
        with pytest.raises(ValueError, match="API key is required"):
            DifyConfig(api_key="")

    def test_base_url_must_be_http(self) -> None:
        with pytest.raises(ValueError, match="http"):
            DifyConfig(api_key="k", base_url="ftp://dify.example.com")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="timeout"):
            DifyConfig(api_key="k", timeout_seconds=0)


class TestComplete:
    def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"answer": "42"})

        gateway = _make_gateway(handler, base_url="https://dify.example.com")

        gateway.complete("what is the answer?", "U123")

        (request,) = seen
        assert request.method == "POST"
        assert str(request.url) == "https://dify.example.com/v1/chat-messages"
        assert request.headers["Authorization"] == "Bearer app-secret-key"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "inputs": {},
            "query": "what is the answer?",
            "response_mode": "blocking",
            "user": "U123",
        }

    def test_trailing_slash_in_base_url(self) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"answer": "ok"})

        gateway = _make_gateway(handler, base_url="https://dify.example.com/")
        gateway.complete("q", "u")

        assert seen == ["https://dify.example.com/v1/chat-messages"]

    def test_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={
                    "event": "message",
                    "message_id": "m-1",
                    "conversation_id": "c-1",
                    "answer": "The answer is 42.",
                    "metadata": {"usage": {"total_tokens": 12}},
                },
            )

        result = _make_gateway(handler).complete("q", "u")

        assert result == CompletionResult(
            answer="The answer is 42.",
            message_id="m-1",
            conversation_id="c-1",
        )

    def test_empty_answer_is_valid(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"answer": ""})

        assert _make_gateway(handler).complete("q", "u").answer == ""

    @pytest.mark.parametrize("status", [400, 401, 404, 429, 500, 503])
    def test_non_success_status(self, status: int) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text='{"code": "app_unavailable"}')

        with pytest.raises(BackendError) as exc_info:
            _make_gateway(handler).complete("q", "u")

        assert exc_info.value.status_code == status
        assert exc_info.value.body == '{"code": "app_unavailable"}'
        assert isinstance(exc_info.value, CompletionError)

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError) as exc_info:
            _make_gateway(handler).complete("q", "u")

        assert isinstance(exc_info.value.cause, httpx.ReadTimeout)

    def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            _make_gateway(handler).complete("q", "u")

    def test_invalid_json_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(TransportError):
            _make_gateway(handler).complete("q", "u")

    @pytest.mark.parametrize(
        "body", [[], {"message_id": "m-1"}, {"answer": None}, {"answer": 5}]
    )
    def test_missing_answer(self, body: object) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        with pytest.raises(TransportError):
            _make_gateway(handler).complete("q", "u")

    def test_shared_client_reused(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"answer": str(calls)})

        gateway = _make_gateway(handler)

        assert gateway.complete("a", "u").answer == "1"
        assert gateway.complete("b", "u").answer == "2"

    def test_close(self) -> None:
        client = httpx.Client()
        gateway = DifyCompletionGateway(DifyConfig(api_key="k"), client=client)

        gateway.close()

        assert client.is_closed

    def test_default_client_uses_configured_timeout(self) -> None:
        gateway = DifyCompletionGateway(
            DifyConfig(api_key="k", timeout_seconds=12.5)
        )
        try:
            assert gateway._client.timeout.read == 12.5
        finally:
            gateway.close()
