"""Shared fixtures for mailrelay tests."""

import pytest

from mailrelay.logging.context import clear_log_context
from mailrelay.persistence import close_database, init_database
from tests.helpers.factories import FakeClock, create_owner


@pytest.fixture(autouse=True)
def clean_log_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def database(tmp_path):
    """Initialise a file-backed SQLite database for one test."""
    db_url = f"sqlite:///{tmp_path / 'mailrelay_test.db'}"
    init_database(db_url)
    yield db_url
    close_database()


@pytest.fixture
def clock():
    """Clock frozen at a fixed instant; advance it explicitly."""
    return FakeClock()


@pytest.fixture
def owner(database):
    """A single owner in the test database."""
    return create_owner()
