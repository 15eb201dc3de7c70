"""
Error ledger: dead-letter record of groups that failed delivery permanently.

Append-only within a run. Entries can be exported as NDJSON so an operator can
see which batches were lost after the process exits.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Iterator, List

from loguru import logger

from .models import FailureRecord


class ErrorLedger:
    """Append-only list of FailureRecords."""

    def __init__(self) -> None:
        self._entries: List[FailureRecord] = []

    def append(self, record: FailureRecord) -> None:
        self._entries.append(record)
        logger.debug(f"Ledger entry added for batch {record.sequence} (total: {len(self._entries)})")

    @property
    def entries(self) -> tuple[FailureRecord, ...]:
        """Read-only view of the entries in append order."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[FailureRecord]:
        return iter(tuple(self._entries))

    def __bool__(self) -> bool:
        return bool(self._entries)

    def write_ndjson(self, path: str | Path, *, mkdirs: bool = True) -> int:
        """Append all entries to an NDJSON file. Returns the number written."""
        p = Path(path)
        if mkdirs:
            p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as f:
            for rec in self._entries:
                f.write(json.dumps(rec.to_dict(), ensure_ascii=False) + "\n")
        logger.info(f"Wrote {len(self._entries)} dead-letter entries to {p}")
        return len(self._entries)

    @staticmethod
    def read_ndjson(path: str | Path, max_records: int | None = None) -> List[FailureRecord]:
        """Load entries previously written by ``write_ndjson``."""
        p = Path(path)
        if not p.exists():
            return []
        out: List[FailureRecord] = []
        with p.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                out.append(FailureRecord(**json.loads(line)))
                if max_records is not None and len(out) >= max_records:
                    break
        return out
