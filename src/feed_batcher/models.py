"""
Data models for the feed batcher.

Products are pydantic models (validated, immutable); the delivery-side values
are frozen dataclasses, safe to pass between coroutines.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class Product(BaseModel):
    """One product entry extracted from a feed."""

    model_config = ConfigDict(frozen=True)

    id: str = ""
    title: str = ""
    description: str = ""

    @field_validator("id", "title", "description", mode="before")
    @classmethod
    def _strip(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @property
    def is_batchable(self) -> bool:
        """Only products with both an id and a title are delivered."""
        return bool(self.id) and bool(self.title)

    @property
    def is_encodable(self) -> bool:
        """False when a field holds lone surrogates, which UTF-8 cannot carry."""
        try:
            for value in (self.id, self.title, self.description):
                value.encode("utf-8")
        except UnicodeEncodeError:
            return False
        return True


class DriverState(str, Enum):
    """Feed driver lifecycle. Transitions are one-way."""

    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass(frozen=True)
class DeliveryAttempt:
    """A single try at handing a group to the sink."""

    sequence: int
    attempt: int  # 0-based
    backoff_ms: float = 0.0


@dataclass(frozen=True)
class FailureRecord:
    """Dead-letter entry for a group that exhausted its retries.

    Attributes:
        sequence: Batch sequence number (1-based, in delivery order)
        error: Description of the last failure
        timestamp: UTC ISO-8601 time the group was given up on
        record_count: Number of products lost with the group
    """

    sequence: int
    error: str
    timestamp: str
    record_count: int = 0

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "error": self.error,
            "timestamp": self.timestamp,
            "record_count": self.record_count,
        }


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of sending one group through the delivery pipeline."""

    sequence: int
    delivered: bool
    attempts: int
    size_bytes: int
    record_count: int
    failure: Optional[FailureRecord] = None


@dataclass(frozen=True)
class RunSummary:
    """Snapshot of the driver counters, returned when a run ends."""

    processed: int
    skipped: int
    batches_sent: int
    errors: int
    state: DriverState
    failures: tuple[FailureRecord, ...] = ()
    shutdown_requested: bool = False

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "skipped": self.skipped,
            "batches_sent": self.batches_sent,
            "errors": self.errors,
            "state": self.state.value,
            "shutdown_requested": self.shutdown_requested,
            "failures": [f.to_dict() for f in self.failures],
        }
