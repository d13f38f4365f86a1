"""Secret generation and hashing for reset tokens and owner credentials.

Reset secrets are high-entropy random values, so a fast unsalted SHA-256 is
enough to make the stored digest useless to an attacker. Owner credentials are
user-chosen and are hashed with bcrypt instead.
"""

import hashlib
import secrets

import bcrypt

# 32 random bytes = 256 bits of entropy, hex encoded to 64 characters
SECRET_NUM_BYTES = 32
BCRYPT_ROUNDS = 12


def generate_secret() -> str:
    """Generate a URL-safe reset secret from the OS CSPRNG.

    Returns:
        64-character hexadecimal string
    """
    return secrets.token_hex(SECRET_NUM_BYTES)


def hash_secret(secret: str) -> str:
    """Compute the one-way digest stored for a reset secret.

    Args:
        secret: Plaintext secret as delivered to the owner

    Returns:
        Hexadecimal SHA-256 digest (64 characters)
    """
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def hash_credential(credential: str) -> str:
    """Hash an owner credential with bcrypt.

    Args:
        credential: New plaintext credential

    Returns:
        bcrypt hash as a UTF-8 string
    """
    hashed = bcrypt.hashpw(credential.encode("utf-8"), bcrypt.gensalt(BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_credential(credential: str, credential_hash: str) -> bool:
    """Check a plaintext credential against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(credential.encode("utf-8"), credential_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False
