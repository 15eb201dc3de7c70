"""
Custom exceptions for the feed batcher.

Only fatal conditions are exceptions. Skipped products and transient sink
failures are handled locally and never escape as errors.
"""

from __future__ import annotations

from typing import Sequence

from .models import FailureRecord


class FeedBatcherError(Exception):
    """Base error for the feed batcher."""

    pass


class ConfigurationError(FeedBatcherError, ValueError):
    """Invalid batching or delivery settings."""

    pass


class SourceError(FeedBatcherError):
    """The record source failed (malformed or unreadable feed)."""

    pass


class DeliveryExhaustedError(FeedBatcherError):
    """A group could not be delivered after all retries."""

    def __init__(self, failures: Sequence[FailureRecord]):
        self.failures = tuple(failures)
        last = self.failures[-1] if self.failures else None
        if last is None:
            msg = "Batch delivery failed"
        else:
            msg = f"Failed to send batch {last.sequence}: {last.error}"
        super().__init__(msg)


def describe_error(exc: BaseException) -> str:
    """Short, log-friendly description of an exception."""
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
