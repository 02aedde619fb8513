# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Completion backend protocol, value types, and errors.

The relay depends only on ``CompletionGateway``; the Dify implementation
lives in ``difyrelay.completion.dify``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class CompletionRequest:
    """One question for the completion backend.

    Attributes:
        query: Text to answer.
        user_id: Stable identifier of the asking user.
    """

    query: str
    user_id: str


@dataclass(frozen=True)
class CompletionResult:
    """Generated answer.

    Attributes:
        answer: Answer text.
        message_id: Backend message ID, empty if not reported.
        conversation_id: Backend conversation ID, empty if not reported.
    """

    answer: str
    message_id: str = ""
    conversation_id: str = ""


class CompletionError(Exception):
    """Base class for completion failures.  A failure is final."""


class BackendError(CompletionError):
    """Raised when the backend answers with a non-success status.

    Attributes:
        status_code: HTTP status code.
        body: Response body as text.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"completion backend returned {status_code}: {body}")


class TransportError(CompletionError):
    """Raised when the backend cannot be reached or its reply is unusable.

    Attributes:
        cause: Underlying exception.
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"completion request failed: {cause}")


class CompletionGateway(Protocol):
    """Interface for the external AI completion backend."""

    def complete(self, query: str, user_id: str) -> CompletionResult:
        """Send *query* on behalf of *user_id* and return the answer.

        Blocks the calling thread for a single request/response
        exchange.  No retry.

        Raises:
            BackendError: On a non-success status.
            TransportError: On connection, timeout, or decoding failure.
        """
        ...
