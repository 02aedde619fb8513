# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Reply formatting.

Turns a generated answer into a Slack Block Kit payload: ``section``
blocks with ``mrkdwn`` text, the first of which mentions the sender.
Answer text is escaped so that generated output can never inject
mentions, links, or broadcast commands.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any


#: Maximum characters in a ``section`` block's text object.
_MAX_SECTION_CHARS = 3000

#: Length of the plain-text notification fallback.
_MAX_FALLBACK_CHARS = 200

#: Slack user, bot, and workspace IDs.
_SLACK_ID_PATTERN = re.compile(r"^[A-Z0-9]+$")


def escape_mrkdwn(text: str) -> str:
    """Escape the three control characters of Slack's text format.

    Slack treats ``<`` and ``>`` as entity delimiters (mentions, links,
    ``<!channel>``) and ``&`` as the start of an entity reference.
    """
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def mention(sender_id: str) -> str:
    """Return the mention markup for *sender_id*.

    IDs outside Slack's ID alphabet are rendered as escaped text rather
    than as a mention entity.
    """
    if _SLACK_ID_PATTERN.match(sender_id):
        return f"<@{sender_id}>"
    return f"@{escape_mrkdwn(sender_id)}"


@dataclass(frozen=True)
class ReplyPayload:
    """Structured rich-message body for one reply.

    Attributes:
        blocks: Block Kit blocks, in display order.
        text: Plain fallback shown in notifications.
        message_id: The message being answered.
        thread_id: Thread of the message being answered, if any.
    """

    blocks: tuple[dict[str, Any], ...]
    text: str
    message_id: str = ""
    thread_id: str = ""

    def to_json(self) -> str:
        """Serialize the message body deterministically."""
        return json.dumps(
            {"blocks": list(self.blocks), "text": self.text},
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
        )


def _safe_cut(line: str, limit: int) -> int:
    """Return a cut index at or below *limit* outside any ``&...;`` entity."""
    amp = line.rfind("&", max(0, limit - 4), limit)
    if amp > 0 and ";" not in line[amp:limit]:
        return amp
    return limit


def _split_sections(text: str, limit: int) -> list[str]:
    """Split text into chunks of at most *limit* characters.

    Splits at paragraph boundaries first, then at line boundaries, and
    hard-wraps lines that are still too long.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""

    def _flush() -> None:
        nonlocal current
        if current:
            chunks.append(current)
        current = ""

    for paragraph in text.split("\n\n"):
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) <= limit:
            current = candidate
            continue
        _flush()
        if len(paragraph) <= limit:
            current = paragraph
            continue
        for line in paragraph.split("\n"):
            candidate = f"{current}\n{line}" if current else line
            if len(candidate) <= limit:
                current = candidate
                continue
            _flush()
            while len(line) > limit:
                cut = _safe_cut(line, limit)
                chunks.append(line[:cut])
                line = line[cut:]
            current = line

    _flush()
    return chunks


def _section(text: str) -> dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def format_interactive(
    answer_text: str,
    sender_id: str,
    *,
    message_id: str = "",
    thread_id: str = "",
) -> ReplyPayload:
    """Build the reply payload for a generated answer.

    Pure and deterministic: identical arguments produce identical
    payloads.

    Args:
        answer_text: Generated answer from the completion backend.
        sender_id: Platform user ID of the person being answered.
        message_id: ID of the message being answered.
        thread_id: Thread of the message being answered.

    Returns:
        Payload whose first block mentions the sender, followed by the
        escaped answer.
    """
    prefix = mention(sender_id) + " "
    body = escape_mrkdwn(answer_text)

    # Split after escaping since escaping grows the text; every chunk
    # leaves room for the mention so the first block fits too.
    limit = _MAX_SECTION_CHARS - len(prefix)
    chunks = _split_sections(body, limit) if body else [""]

    blocks = [_section(prefix + chunks[0])]
    blocks.extend(_section(chunk) for chunk in chunks[1:])

    fallback = prefix + body
    if len(fallback) > _MAX_FALLBACK_CHARS:
        fallback = fallback[: _safe_cut(fallback, _MAX_FALLBACK_CHARS)]
    return ReplyPayload(
        blocks=tuple(blocks),
        text=fallback,
        message_id=message_id,
        thread_id=thread_id,
    )
