from __future__ import annotations

from typing import Optional


class DiscordError(Exception):
    """Base Discord interactions error."""


class DiscordConfigError(DiscordError):
    """Discord interactions configuration error."""


class DiscordAPIError(DiscordError):
    """Discord API request error."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class DiscordTransientError(DiscordAPIError):
    """Retryable Discord API error (rate limits, network issues)."""


class DiscordPermanentError(DiscordAPIError):
    """Non-retryable Discord API error (bad credentials, invalid requests)."""
