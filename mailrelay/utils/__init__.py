"""Utility functions for secrets, hashing, and time handling."""

from .hashing import generate_secret, hash_credential, hash_secret, verify_credential
from .timestamps import (
    ensure_utc,
    format_timestamp_for_log,
    from_storage,
    to_storage,
    utc_now,
)

__all__ = [
    # Hashing
    "generate_secret",
    "hash_secret",
    "hash_credential",
    "verify_credential",
    # Timestamps
    "utc_now",
    "ensure_utc",
    "to_storage",
    "from_storage",
    "format_timestamp_for_log",
]
