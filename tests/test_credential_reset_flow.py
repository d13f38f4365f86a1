"""Tests for the credential reset flow."""

from urllib.parse import parse_qs, urlparse

import pytest

from mailrelay.config.models import ApplicationConfig
from mailrelay.domain.models import JobKind
from mailrelay.flows import CredentialResetFlow, check_credential_strength
from mailrelay.notifications import NotificationProducer
from mailrelay.queue import NotificationQueue
from mailrelay.tokens import (
    InvalidOrExpiredToken,
    OwnerNotFound,
    ResetTokenStore,
    WeakCredentialError,
)
from tests.helpers import create_owner, fast_hasher


@pytest.fixture
def queue(database, clock):
    return NotificationQueue(clock=clock)


@pytest.fixture
def flow(queue, clock):
    store = ResetTokenStore(credential_hasher=fast_hasher, clock=clock)
    producer = NotificationProducer(
        queue, app_config=ApplicationConfig(url="https://app.example.com")
    )
    return CredentialResetFlow(store, producer)


def _secret_from_job(queue, job_id):
    link = queue.get_job(job_id).payload.params["resetLink"]
    return parse_qs(urlparse(link).query)["token"][0]


class TestCredentialStrength:
    """Tests for check_credential_strength."""

    def test_strong_credential(self):
        assert check_credential_strength("NewPass123") == []

    @pytest.mark.parametrize(
        "credential,problem",
        [
            ("Ab1", "at least 8 characters"),
            ("newpass123", "uppercase"),
            ("NEWPASS123", "lowercase"),
            ("NewPassword", "digit"),
        ],
    )
    def test_weak_credentials(self, credential, problem):
        problems = check_credential_strength(credential)
        assert any(problem in p for p in problems)

    def test_empty_credential_lists_every_problem(self):
        assert len(check_credential_strength("")) == 4


class TestRequestReset:
    """Tests for starting a reset."""

    def test_request_reset_enqueues_email(self, flow, queue, owner):
        job_id = flow.request_reset(owner.id)

        job = queue.get_job(job_id)
        assert job.job_kind == JobKind.SEND_RESET_PASSWORD
        assert job.payload.to == owner.email
        assert job.payload.params["firstName"] == "Ana"
        assert flow.check_token(_secret_from_job(queue, job_id)) is True

    def test_request_reset_unknown_owner(self, flow, queue, database):
        with pytest.raises(OwnerNotFound):
            flow.request_reset("missing")

        assert queue.get_status().total == 0

    def test_request_by_email(self, flow, queue, owner):
        job_id = flow.request_reset_by_email("ANA@example.com")
        assert queue.get_job(job_id).payload.to == owner.email

    def test_request_by_unknown_email_returns_none(self, flow, queue, database):
        assert flow.request_reset_by_email("nobody@example.com") is None
        assert queue.get_status().total == 0

    def test_new_request_invalidates_previous_link(self, flow, queue, owner):
        first = _secret_from_job(queue, flow.request_reset(owner.id))
        second = _secret_from_job(queue, flow.request_reset(owner.id))

        assert flow.check_token(first) is False
        assert flow.check_token(second) is True

    def test_undeliverable_address_keeps_earlier_token(self, flow, queue, database):
        """A malformed stored address ends the request before any token is touched."""
        create_owner(owner_id="o1", email="not-an-address")
        earlier = flow.token_store.issue("o1")

        assert flow.request_reset("o1") is None

        assert flow.check_token(earlier) is True
        assert queue.get_status().total == 0


class TestResetCredential:
    """Tests for completing a reset."""

    def test_reset_credential(self, flow, queue, owner):
        secret = _secret_from_job(queue, flow.request_reset(owner.id))

        flow.reset_credential(secret, "NewPass123")

        assert flow.check_token(secret) is False
        with pytest.raises(InvalidOrExpiredToken):
            flow.reset_credential(secret, "NewPass456")

    def test_weak_credential_leaves_token_usable(self, flow, queue, owner):
        secret = _secret_from_job(queue, flow.request_reset(owner.id))

        with pytest.raises(WeakCredentialError) as exc_info:
            flow.reset_credential(secret, "short")

        assert exc_info.value.problems
        assert flow.check_token(secret) is True
