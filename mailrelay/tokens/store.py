"""Single-use, time-limited credential reset tokens.

Only the SHA-256 digest of a secret is stored. Issuing and consuming both take
the owner row lock first, so for any one owner these operations run one at a
time; the conditional update on ``used_at`` decides which consumer wins.
"""

import uuid
from datetime import datetime, timedelta
from typing import Callable, ContextManager

from sqlalchemy.orm import Session

from mailrelay.domain.models import ResetToken
from mailrelay.logging import get_logger
from mailrelay.persistence import OwnerRepository, ResetTokenRepository, get_session
from mailrelay.utils.hashing import generate_secret, hash_credential, hash_secret
from mailrelay.utils.timestamps import format_timestamp_for_log, utc_now

from .exceptions import InvalidOrExpiredToken, OwnerNotFound

logger = get_logger(__name__, component="tokens")

DEFAULT_TOKEN_LIFETIME_SECONDS = 15 * 60


class ResetTokenStore:
    """Issue, consume, and validate credential reset tokens.

    Args:
        session_factory: Context manager yielding a transactional session
        lifetime_seconds: How long a secret stays valid after issuance
        credential_hasher: One-way hash applied to new credentials
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        lifetime_seconds: float = DEFAULT_TOKEN_LIFETIME_SECONDS,
        credential_hasher: Callable[[str], str] = hash_credential,
        clock: Callable[[], datetime] = utc_now,
    ):
        if lifetime_seconds <= 0:
            raise ValueError("lifetime_seconds must be positive")

        self.session_factory = session_factory
        self.lifetime = timedelta(seconds=lifetime_seconds)
        self.credential_hasher = credential_hasher
        self.clock = clock

    def issue(self, owner_id: str) -> str:
        """Create a new reset token for an owner.

        Every token the owner has not used yet is invalidated in the same
        transaction, so at most one token per owner is valid at a time.

        Args:
            owner_id: Owner to issue the token for

        Returns:
            The plaintext secret (never persisted)

        Raises:
            OwnerNotFound: If the owner does not exist
        """
        secret = generate_secret()
        now = self.clock()
        token = ResetToken(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            token_hash=hash_secret(secret),
            expires_at=now + self.lifetime,
            created_at=now,
        )

        with self.session_factory() as session:
            owners = OwnerRepository(session)
            tokens = ResetTokenRepository(session)

            if owners.lock_for_update(owner_id) is None:
                raise OwnerNotFound(owner_id)

            invalidated = tokens.invalidate_unused(owner_id, now)
            tokens.add(token)

        logger.info(
            "Reset token issued",
            extra={
                "event": "token.issued",
                "owner_id": owner_id,
                "token_id": token.id,
                "expires_at": format_timestamp_for_log(token.expires_at),
                "invalidated": invalidated,
            },
        )
        return secret

    def consume(self, secret: str, new_credential: str) -> None:
        """Spend a secret and replace the owner's credential.

        Token lookup, the conditional ``used_at`` update, the credential write,
        and invalidation of the owner's other tokens commit together or not at
        all.

        Args:
            secret: Plaintext secret as delivered to the owner
            new_credential: Credential to store (hashed before writing)

        Raises:
            InvalidOrExpiredToken: If the secret is unknown, expired, or used
        """
        # Hash outside the transaction so the owner lock is held briefly
        credential_hash = self.credential_hasher(new_credential)
        token_hash = hash_secret(secret)

        with self.session_factory() as session:
            owners = OwnerRepository(session)
            tokens = ResetTokenRepository(session)

            token = tokens.get_by_hash(token_hash)
            if token is None:
                logger.info(
                    "Reset token rejected",
                    extra={"event": "token.rejected", "reason": "unknown"},
                )
                raise InvalidOrExpiredToken()

            if owners.lock_for_update(token.owner_id) is None:
                raise InvalidOrExpiredToken()

            now = self.clock()
            if not tokens.mark_used(token.id, now):
                logger.info(
                    "Reset token rejected",
                    extra={
                        "event": "token.rejected",
                        "reason": "used_or_expired",
                        "token_id": token.id,
                        "owner_id": token.owner_id,
                    },
                )
                raise InvalidOrExpiredToken()

            owners.update_credential(token.owner_id, credential_hash)
            siblings = tokens.invalidate_unused(token.owner_id, now, exclude_id=token.id)

        logger.info(
            "Reset token consumed",
            extra={
                "event": "token.consumed",
                "owner_id": token.owner_id,
                "token_id": token.id,
                "siblings_invalidated": siblings,
            },
        )

    def validate(self, secret: str) -> bool:
        """Check whether a secret could currently be consumed.

        Read-only; a True result can be invalidated by a concurrent consume.
        """
        with self.session_factory() as session:
            token = ResetTokenRepository(session).get_by_hash(hash_secret(secret))

        return token is not None and token.is_valid(self.clock())
