"""Hosted store access: HTTP client, row mappers and repositories."""

from practice_desk.store.client import StoreClient
from practice_desk.store.errors import (
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    StoreError,
)
from practice_desk.store.ledger import StoreCashLedger
from practice_desk.store.repositories import PracticeRepository

__all__ = [
    "StoreClient",
    "StoreCashLedger",
    "PracticeRepository",
    "StoreError",
    "ConfigurationError",
    "AuthenticationError",
    "RateLimitError",
]
