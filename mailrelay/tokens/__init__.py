"""Credential reset tokens."""

from .exceptions import InvalidOrExpiredToken, OwnerNotFound, TokenError, WeakCredentialError
from .store import DEFAULT_TOKEN_LIFETIME_SECONDS, ResetTokenStore

__all__ = [
    "ResetTokenStore",
    "DEFAULT_TOKEN_LIFETIME_SECONDS",
    "TokenError",
    "OwnerNotFound",
    "InvalidOrExpiredToken",
    "WeakCredentialError",
]
