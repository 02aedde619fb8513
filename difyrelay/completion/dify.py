# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Dify chat app client implementing ``CompletionGateway``.

Uses the blocking response mode of ``POST /v1/chat-messages``: one
request, one JSON reply carrying the full answer.  Every call starts a
new Dify conversation.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from difyrelay.completion.config import DifyConfig
from difyrelay.completion.gateway import (
    BackendError,
    CompletionRequest,
    CompletionResult,
    TransportError,
)


logger = logging.getLogger(__name__)

_CHAT_MESSAGES_PATH = "/v1/chat-messages"


class DifyCompletionGateway:
    """Blocking Dify client.  Implements ``CompletionGateway``.

    The underlying ``httpx.Client`` is shared by all relay tasks; it is
    safe for concurrent use from multiple threads.

    Args:
        config: Dify connection settings.
        client: Optional pre-built ``httpx.Client`` (for testing).
    """

    def __init__(
        self, config: DifyConfig, client: httpx.Client | None = None
    ) -> None:
        self._config = config
        self._client = client or httpx.Client(timeout=config.timeout_seconds)
        self._url = config.base_url.rstrip("/") + _CHAT_MESSAGES_PATH

    def complete(self, query: str, user_id: str) -> CompletionResult:
        """Ask the Dify app to answer *query* for *user_id*.

        Raises:
            BackendError: On a non-2xx response.
            TransportError: On transport failure or a malformed body.
        """
        request = CompletionRequest(query=query, user_id=user_id)
        try:
            response = self._client.post(
                self._url,
                headers={
                    "Authorization": f"Bearer {self._config.api_key}",
                    "Content-Type": "application/json",
                },
                json=_request_body(request),
            )
        except httpx.HTTPError as e:
            raise TransportError(e) from e

        if not response.is_success:
            raise BackendError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(e) from e

        result = _parse_result(data)
        logger.debug(
            "Dify answered message %s (%d chars)",
            result.message_id or "?",
            len(result.answer),
        )
        return result

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()


def _request_body(request: CompletionRequest) -> dict[str, Any]:
    return {
        "inputs": {},
        "query": request.query,
        "response_mode": "blocking",
        "user": request.user_id,
    }


def _parse_result(data: object) -> CompletionResult:
    """Build a ``CompletionResult`` from a decoded response body.

    Raises:
        TransportError: If the body lacks a string ``answer``.
    """
    if not isinstance(data, dict):
        raise TransportError(
            ValueError(f"expected a JSON object, got {type(data).__name__}")
        )
    answer = data.get("answer")
    if not isinstance(answer, str):
        raise TransportError(ValueError("response has no 'answer' string"))
    return CompletionResult(
        answer=answer,
        message_id=str(data.get("message_id") or ""),
        conversation_id=str(data.get("conversation_id") or ""),
    )
