"""Exceptions raised by reset-token operations.

These propagate synchronously to callers; none of them is retried.
"""


class TokenError(Exception):
    """Base exception for reset-token errors."""

    pass


class OwnerNotFound(TokenError):
    """Raised when a token is requested for an owner that does not exist."""

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"Owner not found: {owner_id}")


class InvalidOrExpiredToken(TokenError):
    """Raised when a secret is unknown, expired, or already used.

    The three cases are deliberately indistinguishable to the caller.
    """

    def __init__(self, message: str = "Invalid or expired reset token"):
        super().__init__(message)


class WeakCredentialError(TokenError):
    """Raised when a new credential does not meet the strength policy."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("Credential does not meet requirements: " + "; ".join(self.problems))
