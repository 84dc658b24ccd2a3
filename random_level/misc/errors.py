"""Failure kinds reported by a random search session."""

from __future__ import annotations


class RandomSearchError(Exception):
    """Base error carrying a stable kind tag and a user-facing message."""

    kind = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class TransportFailure(RandomSearchError):
    """The remote query failed; distinct from a page that came back empty."""

    kind = "transport_failure"


class EmptyCollection(RandomSearchError):
    kind = "empty_collection"


class StaleCache(RandomSearchError):
    """Cached boundary no longer matches the remote collection."""

    kind = "stale_cache"


class ExhaustedRetries(RandomSearchError):
    kind = "exhausted_retries"


class InvalidSelection(RandomSearchError):
    kind = "invalid_selection"
