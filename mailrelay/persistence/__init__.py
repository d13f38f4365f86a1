"""Persistence layer for database operations using SQLAlchemy.

This module provides the public API for database operations including:
- Database initialization and connection management
- Repository classes for owners, reset tokens, and notification jobs
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - OwnerRepository: owner directory lookups and credential writes
    - ResetTokenRepository: reset-token records
    - JobRepository: notification queue rows

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from mailrelay.persistence import init_database, get_session, OwnerRepository
    >>>
    >>> init_database("sqlite:///./data/mailrelay.db")
    >>>
    >>> with get_session() as session:
    ...     owner = OwnerRepository(session).get_by_email("ana@example.com")
"""

from .database import close_database, get_engine, get_session, init_database
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)
from .repositories import JobRepository, OwnerRepository, ResetTokenRepository

__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    # Repositories
    "OwnerRepository",
    "ResetTokenRepository",
    "JobRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
