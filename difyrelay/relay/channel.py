# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Chat channel protocols and message types.

Defines the interface between the platform-agnostic relay core and the
channel-specific implementations (Slack today): the inbound event view,
the event stream that delivers it, and the client that posts replies.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol


if TYPE_CHECKING:
    from difyrelay.relay.formatter import ReplyPayload


@dataclass(frozen=True)
class InboundEvent:
    """Platform-agnostic view of a received chat message.

    Extracted once by the event stream; the relay core never sees the
    raw platform event.
    """

    conversation_id: str
    """Conversation the message was posted in (Slack channel ID)."""

    message_id: str
    """Platform message identifier (Slack ``ts``)."""

    sender_id: str
    """Platform user ID of the author."""

    sender_display_name: str
    """Human-readable author name; falls back to ``sender_id``."""

    content: str | Mapping[str, Any]
    """Raw message content: a JSON document string or decoded mapping.

    Expected to carry the message text in a ``text`` field."""

    is_bot: bool = False
    """True when the author is a bot (including this relay)."""

    thread_id: str = ""
    """Parent thread identifier, empty for top-level messages."""


EventHandler = Callable[[InboundEvent], None]
"""Per-event callback.  Raises on malformed events."""


class StreamHealth(Enum):
    """Health state of an event stream.

    Attributes:
        STARTING: Not yet connected.
        CONNECTED: Healthy, receiving events.
        DEGRADED: Temporarily lost connection, internally retrying.
        STOPPED: Closed by the relay.
    """

    STARTING = "starting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    STOPPED = "stopped"


@dataclass(frozen=True)
class StreamStatus:
    """Current status of an event stream.

    Attributes:
        health: Current health state.
        message: Human-readable status description.
    """

    health: StreamHealth
    message: str = ""


class EventStream(Protocol):
    """Interface for the persistent inbound event connection.

    Implementations own their connection threads and reconnect logic.
    """

    def subscribe(self, handler: EventHandler) -> None:
        """Connect and deliver every received message to *handler*.

        Handler exceptions are logged by the stream and never close
        the connection.
        """
        ...

    def stop(self) -> None:
        """Close the connection and release resources."""
        ...

    @property
    def status(self) -> StreamStatus:
        """Current health of the connection."""
        ...


class DeliveryFailure(Exception):
    """Base class for reply delivery failures."""


class InvalidTarget(DeliveryFailure):
    """Raised when a reply has no conversation to be delivered to."""


class DeliveryError(DeliveryFailure):
    """Raised when the platform rejects or fails to accept a reply.

    Attributes:
        reason: Platform error code or transport error description.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"reply delivery failed: {reason}")


class DeliveryClient(Protocol):
    """Interface for posting replies into a conversation."""

    def send_interactive(
        self, conversation_id: str, payload: ReplyPayload
    ) -> None:
        """Post a rich-message reply.

        Makes exactly one attempt.

        Raises:
            InvalidTarget: If *conversation_id* is empty.
            DeliveryError: If the platform call fails.
        """
        ...
