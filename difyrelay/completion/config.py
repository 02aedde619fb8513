# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Dify completion backend configuration."""

from __future__ import annotations

from dataclasses import dataclass

from difyrelay.logging import SecretFilter


#: Public Dify cloud endpoint.
DEFAULT_BASE_URL = "https://api.dify.ai"


@dataclass(frozen=True)
class DifyConfig:
    """Dify chat app connection settings.

    Attributes:
        api_key: App API key, sent as a bearer token.
        base_url: API root without the ``/v1`` suffix.
        timeout_seconds: Per-request timeout for the blocking completion
            call.  Bounds how long an in-flight task can outlive a
            shutdown drain.
    """

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        """Validate configuration and register secrets.

        Raises:
            ValueError: If configuration is invalid.
        """
        SecretFilter.register_secret(self.api_key)
        if not self.api_key:
            raise ValueError("Dify API key is required")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"Dify base URL must be an http(s) URL: {self.base_url!r}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"Dify timeout must be > 0s: {self.timeout_seconds}"
            )
