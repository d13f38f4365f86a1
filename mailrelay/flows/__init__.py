"""Application flows built on tokens and notifications."""

from .credential_reset import CredentialResetFlow, check_credential_strength

__all__ = ["CredentialResetFlow", "check_credential_strength"]
