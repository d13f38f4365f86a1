"""mailrelay: queued transactional email delivery and credential reset tokens."""

__version__ = "1.0.0"
