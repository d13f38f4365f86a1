"""Scheduling module for the notification worker pool."""

from .service import WorkerPool

__all__ = [
    "WorkerPool",
]
