# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Completion backend access.

- CompletionGateway: protocol the relay depends on
- DifyCompletionGateway: Dify chat app implementation
"""

from difyrelay.completion.dify import DifyCompletionGateway
from difyrelay.completion.gateway import (
    BackendError,
    CompletionError,
    CompletionGateway,
    CompletionRequest,
    CompletionResult,
    TransportError,
)


__all__ = [
    "BackendError",
    "CompletionError",
    "CompletionGateway",
    "CompletionRequest",
    "CompletionResult",
    "DifyCompletionGateway",
    "TransportError",
]
