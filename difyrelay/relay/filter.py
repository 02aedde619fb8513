# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Inbound event filtering.

Decides whether a message is addressed to the bot.  Mention detection is
a plain substring test: any ``@`` (Slack encodes user mentions as
``<@U123>``) or the configured bot name.  An ``@`` in ordinary prose,
such as an email address, therefore counts as a mention.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from difyrelay.relay.channel import InboundEvent


#: Token that marks a message as a mention.
MENTION_MARKER = "@"


class DecodeError(ValueError):
    """Raised when message content is not a text payload.

    Malformed content means the platform broke its event contract, so
    the error is surfaced to the event stream instead of being dropped.
    """


@dataclass(frozen=True)
class FilterDecision:
    """Outcome of filtering one event.

    Attributes:
        accept: Whether the event should be relayed.
        query: Trimmed message text to send to the completion backend.
    """

    accept: bool
    query: str = ""


def decode_text(content: str | Mapping[str, Any]) -> str:
    """Extract the ``text`` field from raw message content.

    Args:
        content: JSON document string or already-decoded mapping.

    Returns:
        The message text, or an empty string if there is none.

    Raises:
        DecodeError: If the content is not a JSON object or ``text`` is
            not a string.
    """
    if isinstance(content, str):
        try:
            decoded = json.loads(content)
        except json.JSONDecodeError as e:
            raise DecodeError(f"message content is not valid JSON: {e}") from e
    else:
        decoded = content

    if not isinstance(decoded, Mapping):
        raise DecodeError(
            f"message content must be an object, got {type(decoded).__name__}"
        )

    text = decoded.get("text")
    if text is None:
        return ""
    if not isinstance(text, str):
        raise DecodeError(
            f"message text must be a string, got {type(text).__name__}"
        )
    return text


def is_mentioned(text: str, bot_name: str = "") -> bool:
    """Return whether *text* contains a mention marker."""
    if MENTION_MARKER in text:
        return True
    return bool(bot_name) and bot_name in text


def filter_event(event: InboundEvent, bot_name: str = "") -> FilterDecision:
    """Decide whether *event* warrants a reply.

    Args:
        event: The inbound message.
        bot_name: Configured bot name that also counts as a mention.

    Returns:
        Accepting decision with the trimmed query, or a rejection.

    Raises:
        DecodeError: If the event content is malformed.
    """
    text = decode_text(event.content).strip()
    if event.is_bot or not text:
        return FilterDecision(accept=False)
    if not is_mentioned(text, bot_name):
        return FilterDecision(accept=False)
    return FilterDecision(accept=True, query=text)
