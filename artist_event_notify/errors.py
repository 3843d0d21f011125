"""Exception types for the artist event notifier."""
from typing import Optional


class EventNotifyError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(EventNotifyError):
    """Required configuration is missing or invalid. Fatal to a run."""


class CatalogError(EventNotifyError):
    """Fetching events for one artist failed."""

    def __init__(self, artist_id: Optional[str], message: str, retryable: bool = True):
        super().__init__(message)
        self.artist_id = artist_id
        self.retryable = retryable

    def __str__(self) -> str:
        base = super().__str__()
        if self.artist_id:
            return f"{base} (artist {self.artist_id})"
        return base


class CatalogRateLimitError(CatalogError):
    """The catalog kept answering 429 after all retries."""


class PushDeliveryError(EventNotifyError):
    """The push provider rejected a message."""

    def __init__(self, message: str, invalid_token: bool = False):
        super().__init__(message)
        self.invalid_token = invalid_token
