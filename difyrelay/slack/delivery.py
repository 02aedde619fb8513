# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack reply delivery.

Implements the ``DeliveryClient`` protocol with ``chat.postMessage``.
"""

from __future__ import annotations

import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from difyrelay.relay.channel import DeliveryError, InvalidTarget
from difyrelay.relay.formatter import ReplyPayload
from difyrelay.slack.config import SlackChannelConfig


logger = logging.getLogger(__name__)


class SlackDeliveryClient:
    """``DeliveryClient`` implementation for Slack.

    Posts Block Kit replies either as new messages in the conversation
    or, with ``reply_in_thread``, threaded under the answered message.
    The ``WebClient`` is shared by all relay tasks.

    Args:
        client: Slack ``WebClient`` authenticated with the bot token.
        reply_in_thread: Thread replies under the answered message.
    """

    def __init__(self, client: WebClient, *, reply_in_thread: bool = False):
        self._client = client
        self._reply_in_thread = reply_in_thread

    @classmethod
    def from_config(cls, config: SlackChannelConfig) -> SlackDeliveryClient:
        """Create a delivery client from channel configuration."""
        return cls(
            WebClient(token=config.bot_token),
            reply_in_thread=config.reply_in_thread,
        )

    def send_interactive(
        self, conversation_id: str, payload: ReplyPayload
    ) -> None:
        """Post *payload* to *conversation_id*.

        Raises:
            InvalidTarget: If *conversation_id* is empty.
            DeliveryError: If Slack rejects the message or the request
                fails.
        """
        if not conversation_id:
            raise InvalidTarget("reply has no conversation ID")

        kwargs: dict[str, object] = {
            "channel": conversation_id,
            "blocks": list(payload.blocks),
            "text": payload.text,
        }
        thread_ts = payload.thread_id or payload.message_id
        if self._reply_in_thread and thread_ts:
            kwargs["thread_ts"] = thread_ts

        try:
            response = self._client.chat_postMessage(
                **kwargs  # type: ignore[arg-type]
            )
        except SlackApiError as e:
            raise DeliveryError(_slack_error(e)) from e
        except Exception as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e

        if not response.get("ok", False):
            raise DeliveryError(str(response.get("error") or "not ok"))

        logger.debug(
            "Posted reply to %s (ts %s)", conversation_id, response.get("ts")
        )


def _slack_error(error: SlackApiError) -> str:
    """Return the Slack error code from an API error, if present."""
    response = getattr(error, "response", None)
    data = getattr(response, "data", None)
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return str(error)
