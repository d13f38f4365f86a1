"""End-to-end test: reset request through queue, worker, and token consumption.

Exercises the real queue, template renderer, token store, and database; only
the provider HTTP call is replaced.
"""

import re
import time

import pytest

from mailrelay.config.environment import EnvironmentConfig
from mailrelay.config.models import AppConfig
from mailrelay.main import build_services
from mailrelay.notifications import DeliveryRateLimitedError
from mailrelay.persistence import OwnerRepository, get_session
from mailrelay.tokens import InvalidOrExpiredToken
from mailrelay.utils.hashing import verify_credential
from tests.helpers import FakeDeliveryClient


@pytest.fixture
def delivery():
    return FakeDeliveryClient()


@pytest.fixture
def services(database, delivery):
    app_config = AppConfig.model_validate(
        {
            "app": {"name": "Acme", "url": "https://app.example.com"},
            "queue": {"max_attempts": 3, "backoff_delay": "1ms"},
        }
    )
    return build_services(app_config, EnvironmentConfig(), delivery_client=delivery)


def _secret_from_html(html):
    match = re.search(r"reset-password\?token=([0-9a-f]{64})", html)
    assert match, "reset link missing from rendered email"
    return match.group(1)


class TestResetNotificationFlow:
    """Reset email delivered by the worker carries a usable secret."""

    def test_reset_email_delivered_and_secret_consumed(self, services, delivery, owner):
        job_id = services.reset_flow.request_reset(owner.id)

        outcomes = services.worker.drain("worker-1")

        assert [o.status for o in outcomes] == ["completed"]
        assert services.queue.get_job(job_id) is None
        assert services.queue.get_status().total == 0

        envelope = delivery.sent[0]
        assert envelope.to == "ana@example.com"
        assert envelope.subject == "Reset your password"
        assert "15 minutes" in envelope.html_content

        secret = _secret_from_html(envelope.html_content)
        assert services.reset_flow.check_token(secret) is True

        services.reset_flow.reset_credential(secret, "NewPass123")

        with get_session() as session:
            stored = OwnerRepository(session).get_by_id(owner.id)
        assert verify_credential("NewPass123", stored.credential_hash)

        with pytest.raises(InvalidOrExpiredToken):
            services.reset_flow.reset_credential(secret, "Another123")

    def test_transient_failure_retried_until_delivered(self, services, delivery, owner):
        delivery.queue_results(DeliveryRateLimitedError("Email rate limit exceeded", 429))
        services.producer.send_welcome_email(owner.email, owner.first_name)

        first = services.worker.drain("worker-1")
        assert [o.status for o in first] == ["retry_scheduled"]

        time.sleep(0.05)
        second = services.worker.drain("worker-1")

        assert [o.status for o in second] == ["completed"]
        assert len(delivery.attempts) == 2
        assert "Welcome, Ana!" in delivery.sent[0].html_content
