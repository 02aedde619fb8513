# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack event stream implementing the ``EventStream`` protocol.

Wraps the Bolt SDK's ``App`` and ``SocketModeHandler``: receives
``message`` events over the Socket Mode WebSocket, converts them to
``InboundEvent`` and hands them to the relay, and tracks connection
health.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from difyrelay.relay.channel import (
    EventHandler,
    InboundEvent,
    StreamHealth,
    StreamStatus,
)
from difyrelay.slack.config import SlackChannelConfig


logger = logging.getLogger(__name__)

#: Message subtypes that carry a newly posted message.  Everything else
#: (edits, deletions, joins, ...) is ignored.  Bot messages are passed
#: on and rejected by the relay filter.
_RELAYED_SUBTYPES = frozenset(
    {"", "thread_broadcast", "file_share", "bot_message"}
)


def to_inbound_event(payload: Mapping[str, Any]) -> InboundEvent:
    """Convert a Slack ``message`` event payload to an ``InboundEvent``.

    The payload itself is the message content; the relay decodes its
    ``text`` field.
    """
    user_id = str(payload.get("user") or "")
    profile = payload.get("user_profile") or {}
    display_name = (
        profile.get("display_name") or profile.get("real_name") or user_id
    )
    return InboundEvent(
        conversation_id=str(payload.get("channel") or ""),
        message_id=str(payload.get("ts") or ""),
        sender_id=user_id,
        sender_display_name=str(display_name),
        content=payload,
        is_bot=bool(payload.get("bot_id"))
        or payload.get("subtype") == "bot_message",
        thread_id=str(payload.get("thread_ts") or ""),
    )


class SlackEventStream:
    """Socket Mode event stream implementing ``EventStream``.

    ``subscribe()`` registers the ``message`` handler and connects;
    ``handler.connect()`` is non-blocking, it starts the WebSocket in a
    background thread and returns immediately.  Events are delivered on
    the SDK's threads.

    Args:
        config: Slack channel configuration.
        app: Optional pre-built Bolt ``App`` (for testing).
        handler: Optional pre-built ``SocketModeHandler`` (for testing).
    """

    def __init__(
        self,
        config: SlackChannelConfig,
        app: App | None = None,
        handler: SocketModeHandler | None = None,
    ) -> None:
        self._config = config
        # App() verifies the bot token with auth.test unless injected
        self._app = app or App(token=config.bot_token)
        self._handler = handler or SocketModeHandler(
            self._app, config.app_token
        )
        self._status = StreamStatus(health=StreamHealth.STARTING)
        self._event_handler: EventHandler | None = None
        self._started = False

    def subscribe(self, handler: EventHandler) -> None:
        """Connect Socket Mode and deliver message events to *handler*.

        Args:
            handler: Called with each ``InboundEvent``.  Exceptions are
                logged and do not affect the connection.
        """
        if self._started:
            logger.warning("Slack event stream already started, ignoring")
            return
        self._event_handler = handler
        self._register_handlers()
        self._install_connection_listeners()
        self._handler.connect()
        self._started = True
        self._status = StreamStatus(health=StreamHealth.CONNECTED)
        logger.info("Slack event stream connected (Socket Mode)")

    def stop(self) -> None:
        """Disconnect Socket Mode and release resources."""
        self._handler.close()
        self._status = StreamStatus(
            health=StreamHealth.STOPPED, message="stopped"
        )
        logger.info("Slack event stream stopped")

    @property
    def status(self) -> StreamStatus:
        """Current health of this stream."""
        return self._status

    def _register_handlers(self) -> None:
        """Register the ``message`` event listener on the Bolt app."""

        @self._app.event("message")
        def handle_message(event: dict[str, Any]) -> None:
            self._on_message_event(event)

    def _on_message_event(self, event: dict[str, Any]) -> None:
        """Convert a ``message`` event and pass it to the subscriber."""
        subtype = event.get("subtype") or ""
        if subtype not in _RELAYED_SUBTYPES:
            logger.debug("Slack: ignoring message subtype %s", subtype)
            return

        inbound = to_inbound_event(event)
        logger.debug(
            "Slack message %s from %s in %s",
            inbound.message_id,
            inbound.sender_id or "(bot)",
            inbound.conversation_id,
        )

        handler = self._event_handler
        assert handler is not None
        try:
            handler(inbound)
        except Exception:
            logger.exception(
                "Failed to handle Slack message %s from %s",
                inbound.message_id,
                inbound.sender_id,
            )

    def _install_connection_listeners(self) -> None:
        """Install close/error/message listeners on the Socket Mode client."""
        client = getattr(self._handler, "client", None)
        if client is None:
            logger.warning(
                "Socket Mode handler has no 'client' attribute; "
                "connection health listeners not installed"
            )
            return

        for attr, callback in (
            ("on_close_listeners", self._on_ws_close),
            ("on_error_listeners", self._on_ws_error),
            ("on_message_listeners", self._on_ws_message),
        ):
            listeners = getattr(client, attr, None)
            if listeners is None:
                logger.warning(
                    "Socket Mode client has no '%s'; health not tracked", attr
                )
                continue
            listeners.append(callback)

    def _on_ws_close(self, code: int, reason: str | None) -> None:
        """Handle WebSocket close: mark as degraded (auto-reconnect)."""
        if self._status.health == StreamHealth.STOPPED:
            return
        self._status = StreamStatus(
            health=StreamHealth.DEGRADED,
            message=f"WebSocket closed (code={code})",
        )
        logger.warning(
            "Slack WebSocket closed: code=%d reason=%s", code, reason
        )

    def _on_ws_error(self, error: Exception) -> None:
        """Handle WebSocket error: mark as degraded."""
        if self._status.health == StreamHealth.STOPPED:
            return
        self._status = StreamStatus(
            health=StreamHealth.DEGRADED,
            message=f"WebSocket error: {error}",
        )
        logger.warning("Slack WebSocket error: %s", error)

    def _on_ws_message(self, message: str) -> None:
        """Recover from degraded state once the reconnected socket delivers."""
        if self._status.health != StreamHealth.DEGRADED:
            return
        self._status = StreamStatus(health=StreamHealth.CONNECTED)
        logger.info("Slack WebSocket recovered (message received)")
