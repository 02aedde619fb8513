# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack channel configuration.

Contains all settings specific to the Slack channel: bot token, app-level
token for Socket Mode, the bot name used for mention detection, and the
reply placement.
"""

from __future__ import annotations

from dataclasses import dataclass

from difyrelay.logging import SecretFilter


@dataclass(frozen=True)
class SlackChannelConfig:
    """Slack channel configuration.

    Attributes:
        bot_token: Bot token (xoxb-...) for API calls.
        app_token: App-level token (xapp-...) for Socket Mode.
        bot_name: Literal name that counts as a mention when it appears
            in message text, in addition to any ``@`` token.  Empty
            disables name matching.
        reply_in_thread: Post replies in the thread of the triggering
            message instead of as a new message in the conversation.
    """

    bot_token: str
    app_token: str
    bot_name: str = ""
    reply_in_thread: bool = False

    def __post_init__(self) -> None:
        """Validate configuration and register secrets.

        Raises:
            ValueError: If a token is missing or malformed.
        """
        SecretFilter.register_secret(self.bot_token)
        SecretFilter.register_secret(self.app_token)
        if not self.bot_token:
            raise ValueError("Slack bot token is required")
        if not self.app_token:
            raise ValueError("Slack app-level token is required")
        if not self.app_token.startswith("xapp-"):
            raise ValueError(
                "Slack app-level token must start with 'xapp-' "
                "(Socket Mode requires an app-level token)"
            )
