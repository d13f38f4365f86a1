"""Test helper utilities for mailrelay tests."""

from .factories import FakeClock, create_owner, fast_hasher, make_payload
from .fake_delivery import FakeDeliveryClient

__all__ = ["FakeClock", "FakeDeliveryClient", "create_owner", "fast_hasher", "make_payload"]
