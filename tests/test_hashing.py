"""Unit tests for secret and credential hashing."""

from mailrelay.utils.hashing import (
    generate_secret,
    hash_credential,
    hash_secret,
    verify_credential,
)


class TestGenerateSecret:
    """Tests for generate_secret function."""

    def test_secret_is_64_hex_chars(self):
        secret = generate_secret()

        assert len(secret) == 64
        assert all(c in "0123456789abcdef" for c in secret)

    def test_secrets_are_unique(self):
        secrets = {generate_secret() for _ in range(100)}
        assert len(secrets) == 100


class TestHashSecret:
    """Tests for hash_secret function."""

    def test_digest_format(self):
        digest = hash_secret("abc123")

        assert len(digest) == 64
        assert all(c in "0123456789abcdef" for c in digest)

    def test_deterministic(self):
        assert hash_secret("abc123") == hash_secret("abc123")

    def test_known_value(self):
        # SHA-256 of the empty string
        assert hash_secret("") == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_different_secrets_differ(self):
        assert hash_secret("abc123") != hash_secret("abc124")

    def test_digest_differs_from_secret(self):
        secret = generate_secret()
        assert hash_secret(secret) != secret


class TestCredentialHashing:
    """Tests for bcrypt credential hashing."""

    def test_hash_verifies(self):
        hashed = hash_credential("NewPass123")

        assert hashed.startswith("$2")
        assert verify_credential("NewPass123", hashed) is True

    def test_wrong_credential_rejected(self):
        hashed = hash_credential("NewPass123")
        assert verify_credential("newpass123", hashed) is False

    def test_hashes_are_salted(self):
        assert hash_credential("NewPass123") != hash_credential("NewPass123")

    def test_malformed_hash_rejected(self):
        assert verify_credential("NewPass123", "not-a-bcrypt-hash") is False
