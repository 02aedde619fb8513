# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Root logger setup for the relay process.

Slack tokens and the Dify API key end up in request headers and error
strings, so every line that reaches the console passes through
``SecretFilter`` first.  Config sections register their credentials as
soon as they are constructed.
"""

import logging
import re
from typing import ClassVar


#: Line layout for the console handler.
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

#: Replacement text for a registered credential.
REDACTED = "[REDACTED]"


class SecretFilter(logging.Filter):
    """Masks registered credentials in the message and its string args.

    The credential set is shared by every instance, so a token registered
    by a config section is masked on any handler carrying this filter.
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    def filter(self, record: logging.LogRecord) -> bool:
        pattern = self._pattern
        if pattern is None:
            return True
        record.msg = pattern.sub(REDACTED, str(record.msg))
        if record.args:
            record.args = tuple(
                pattern.sub(REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Start masking *secret*.  Empty values are skipped."""
        if not secret:
            return
        cls._secrets.add(secret)
        # Longest first so a token containing another is masked whole
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = re.compile("|".join(map(re.escape, ordered)))

    @classmethod
    def clear_secrets(cls) -> None:
        cls._secrets.clear()
        cls._pattern = None


def parse_level(name: str) -> int:
    """Translate a level name such as ``"debug"`` to a logging level.

    Raises:
        ValueError: If the name is not a known logging level.
    """
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def configure_logging(
    level: int = logging.INFO, *, redact: bool = True
) -> None:
    """Send relay logs to stderr at *level*.

    Handlers left on the root logger by an earlier call are replaced, so
    calling this twice never duplicates output.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    if redact:
        handler.addFilter(SecretFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
