"""
Unit tests for the ErrorLedger (dead-letter record).
"""

from feed_batcher.ledger import ErrorLedger
from feed_batcher.models import FailureRecord


def _rec(seq: int, error: str = "boom") -> FailureRecord:
    return FailureRecord(sequence=seq, error=error, timestamp="2024-01-01T00:00:00+00:00")


def test_append_only_in_order():
    ledger = ErrorLedger()
    assert not ledger
    ledger.append(_rec(1))
    ledger.append(_rec(2))

    assert len(ledger) == 2
    assert [r.sequence for r in ledger] == [1, 2]
    assert isinstance(ledger.entries, tuple)


def test_write_and_read_ndjson(tmp_path):
    p = tmp_path / "dlq" / "failed.ndjson"
    ledger = ErrorLedger()
    ledger.append(_rec(1, "boom"))
    ledger.append(_rec(5, "kapow"))

    assert ledger.write_ndjson(p) == 2
    recs = ErrorLedger.read_ndjson(p)

    assert recs == list(ledger.entries)
    assert "kapow" in recs[1].error


def test_read_ndjson_limit(tmp_path):
    p = tmp_path / "failed.ndjson"
    ledger = ErrorLedger()
    for i in range(10):
        ledger.append(_rec(i, f"error-{i}"))
    ledger.write_ndjson(p)

    assert len(ErrorLedger.read_ndjson(p, max_records=5)) == 5


def test_read_ndjson_missing_file(tmp_path):
    assert ErrorLedger.read_ndjson(tmp_path / "nonexistent.ndjson") == []
