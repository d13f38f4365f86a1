"""Credential reset flow: issue a token, email it, and later consume it.

Business rules:
- A new request invalidates any earlier unused token for the same owner
- Lookups by email reveal nothing about whether the account exists
- New credentials must pass the strength policy before the token is spent
- Email delivery happens asynchronously; its failures never reach the caller
- Owners without a deliverable address keep their existing token untouched
"""

import re
from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from mailrelay.logging import get_logger
from mailrelay.logging.context import log_context
from mailrelay.notifications.models import InvalidRecipientError
from mailrelay.notifications.producer import NotificationProducer, normalize_recipient
from mailrelay.persistence import OwnerRepository, get_session
from mailrelay.tokens.exceptions import OwnerNotFound, WeakCredentialError
from mailrelay.tokens.store import ResetTokenStore

logger = get_logger(__name__, component="credential_reset")

MIN_CREDENTIAL_LENGTH = 8


def check_credential_strength(credential: str) -> List[str]:
    """
    List the ways a credential falls short of the policy.

    Policy: at least 8 characters with an uppercase letter, a lowercase
    letter, and a digit.

    Returns:
        Problems found (empty when the credential is acceptable)
    """
    problems = []
    if len(credential or "") < MIN_CREDENTIAL_LENGTH:
        problems.append(f"must be at least {MIN_CREDENTIAL_LENGTH} characters long")
    if not re.search(r"[A-Z]", credential or ""):
        problems.append("must contain an uppercase letter")
    if not re.search(r"[a-z]", credential or ""):
        problems.append("must contain a lowercase letter")
    if not re.search(r"\d", credential or ""):
        problems.append("must contain a digit")
    return problems


class CredentialResetFlow:
    """
    Orchestrates token issuance, reset emails, and credential replacement.

    Args:
        token_store: Issues and consumes reset tokens
        producer: Enqueues the reset email
        session_factory: Context manager yielding a transactional session
    """

    def __init__(
        self,
        token_store: ResetTokenStore,
        producer: NotificationProducer,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
    ):
        self.token_store = token_store
        self.producer = producer
        self.session_factory = session_factory

    def request_reset(self, owner_id: str) -> Optional[str]:
        """
        Issue a token for an owner and enqueue the reset email.

        The owner's address is checked before any token is issued. An
        undeliverable address is logged and the request ends there, so an
        earlier token stays valid and the caller sees no error.

        Returns:
            Id of the notification job, or None if the address is undeliverable

        Raises:
            OwnerNotFound: If the owner does not exist
        """
        with log_context(owner_id=owner_id):
            with self.session_factory() as session:
                owner = OwnerRepository(session).get_by_id(owner_id)
            if owner is None:
                raise OwnerNotFound(owner_id)

            try:
                normalize_recipient(owner.email)
            except InvalidRecipientError as e:
                logger.warning(
                    "Credential reset skipped: owner address is not deliverable",
                    extra={"event": "reset.undeliverable_address", "error": str(e)},
                )
                return None

            secret = self.token_store.issue(owner_id)
            job_id = self.producer.send_password_reset_email(owner.email, owner.first_name, secret)

            logger.info(
                "Credential reset requested",
                extra={"event": "reset.requested", "job_id": job_id},
            )
            return job_id

    def request_reset_by_email(self, email: str) -> Optional[str]:
        """
        Start a reset for whoever owns ``email``.

        Unknown addresses return None without error so callers can answer
        identically either way.

        Returns:
            Id of the notification job, or None if no owner matched
        """
        with self.session_factory() as session:
            owner = OwnerRepository(session).get_by_email(email)

        if owner is None:
            logger.info(
                "Credential reset requested for unknown email",
                extra={"event": "reset.unknown_email"},
            )
            return None

        return self.request_reset(owner.id)

    def check_token(self, secret: str) -> bool:
        """Whether ``secret`` is currently usable."""
        return self.token_store.validate(secret)

    def reset_credential(self, secret: str, new_credential: str) -> None:
        """
        Replace the owner's credential using a reset secret.

        Raises:
            WeakCredentialError: If the credential fails the policy (token untouched)
            InvalidOrExpiredToken: If the secret is unknown, expired, or used
        """
        problems = check_credential_strength(new_credential)
        if problems:
            raise WeakCredentialError(problems)

        self.token_store.consume(secret, new_credential)
        logger.info("Credential reset completed", extra={"event": "reset.completed"})
