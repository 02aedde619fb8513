# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

import json
from collections.abc import Iterator
from typing import Any

import pytest

from difyrelay.dotenv_loader import reset_dotenv_state
from difyrelay.logging import SecretFilter
from difyrelay.relay.channel import InboundEvent


_RELAY_ENV_VARS = (
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "SLACK_BOT_NAME",
    "SLACK_REPLY_IN_THREAD",
    "DIFY_API_KEY",
    "DIFY_BASE_URL",
    "DIFY_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _isolate_process_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear relay env vars, registered secrets and dotenv state.

    Config objects register secrets process-wide and the dotenv loader
    runs once per process, so both are reset around every test.
    """
    for name in _RELAY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    SecretFilter.clear_secrets()
    reset_dotenv_state()
    yield
    SecretFilter.clear_secrets()
    reset_dotenv_state()


def make_event(
    text: Any = "hello <@UBOT> what's up?",
    *,
    conversation_id: str = "C123",
    message_id: str = "1700000000.000100",
    sender_id: str = "U456",
    sender_display_name: str = "Alice",
    is_bot: bool = False,
    thread_id: str = "",
    as_json: bool = True,
) -> InboundEvent:
    """Build an ``InboundEvent`` whose content carries *text*."""
    content: Any = {"text": text}
    if as_json:
        content = json.dumps(content)
    return InboundEvent(
        conversation_id=conversation_id,
        message_id=message_id,
        sender_id=sender_id,
        sender_display_name=sender_display_name,
        content=content,
        is_bot=is_bot,
        thread_id=thread_id,
    )


@pytest.fixture
def event_factory():
    """Factory for inbound events."""
    return make_event
