"""Exceptions raised by the hosted store client."""

from typing import Any


class StoreError(Exception):
    """Base exception for store errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ConfigurationError(StoreError):
    """Store URL or key missing."""

    pass


class AuthenticationError(StoreError):
    """The store rejected the API key."""

    pass


class RateLimitError(StoreError):
    """Rate limit exceeded."""

    pass
