"""
Record sources.

A source is a lazy, single-pass iterator of raw field maps with a cooperative
pause/resume capability. The driver pulls one record at a time, so nothing is
read while a batch is being delivered; ``pause()`` additionally stops the
source from producing anything further (used when draining).
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, Iterator, List, Optional, Protocol

from loguru import logger

from .errors import SourceError

RawRecord = Dict[str, Any]

TEXT_KEY = "$text"
RECORD_TAGS = frozenset({"item", "entry"})  # RSS <item>, Atom <entry>


class RecordSource(Protocol):
    """Protocol for record sources used by the FeedDriver."""

    def __iter__(self) -> Iterator[RawRecord]:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    @property
    def paused(self) -> bool:
        ...

    def close(self) -> None:
        ...


class _PausableSource:
    """Base for sources: yields nothing while paused."""

    def __init__(self) -> None:
        self._paused = False
        self._closed = False

    def pause(self) -> None:
        if not self._paused:
            logger.debug(f"{type(self).__name__} paused")
        self._paused = True

    def resume(self) -> None:
        if self._paused:
            logger.debug(f"{type(self).__name__} resumed")
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release underlying resources; a closed source yields nothing further."""
        self._closed = True

    def __iter__(self) -> Iterator[RawRecord]:
        return self

    def __next__(self) -> RawRecord:
        if self._paused or self._closed:
            raise StopIteration
        return self._next_record()

    def _next_record(self) -> RawRecord:
        raise NotImplementedError


class IterableSource(_PausableSource):
    """Wraps any iterable of field maps (in-memory feeds, tests)."""

    def __init__(self, records: Iterable[RawRecord]):
        super().__init__()
        self._it = iter(records)

    def _next_record(self) -> RawRecord:
        return next(self._it)

    def close(self) -> None:
        closer = getattr(self._it, "close", None)
        if closer is not None and not self._closed:
            closer()
        super().close()


class XmlFeedSource(_PausableSource):
    """
    Streams product records from an RSS or Atom XML feed.

    Each ``<item>``/``<entry>`` becomes a flat map keyed by the child tag with
    its namespace prefix restored (``g:id``, ``g:description``, ``title``...).
    Children carrying attributes or sub-elements are wrapped as
    ``{"$text": ..., **attributes}``. Parsed records are cleared and detached from
    their parent as soon as they are emitted, so memory stays flat on large
    feeds. The file is closed at end of stream, on error, or by ``close()``.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self._path = Path(path)
        self._file: Optional[BinaryIO] = None
        self._events: Optional[Iterator] = None
        self._prefixes: Dict[str, str] = {}  # uri -> prefix
        self._open: List[ET.Element] = []  # elements started but not yet ended
        self.records_read = 0

    @property
    def path(self) -> Path:
        return self._path

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        self._events = None
        super().close()

    def _next_record(self) -> RawRecord:
        if self._events is None:
            try:
                self._file = open(self._path, "rb")
            except OSError as e:
                raise SourceError(f"Cannot open feed {self._path}: {e}") from e
            self._events = ET.iterparse(self._file, events=("start-ns", "start", "end"))

        while True:
            try:
                event, payload = next(self._events)
            except StopIteration:
                self.close()
                raise
            except ET.ParseError as e:
                self.close()
                raise SourceError(f"XML parsing error in {self._path}: {e}") from e
            except OSError as e:
                self.close()
                raise SourceError(f"Cannot read feed {self._path}: {e}") from e

            if event == "start-ns":
                prefix, uri = payload
                self._prefixes.setdefault(uri, prefix)
                continue

            if event == "start":
                self._open.append(payload)
                continue

            self._open.pop()
            if self._local(payload.tag) in RECORD_TAGS:
                record = self._flatten(payload)
                payload.clear()
                # detach from <channel>/<feed> as well, or finished records pile up there
                if self._open:
                    self._open[-1].remove(payload)
                self.records_read += 1
                return record

    def _qualified(self, tag: str) -> str:
        if tag.startswith("{"):
            uri, _, local = tag[1:].partition("}")
            prefix = self._prefixes.get(uri, "")
            return f"{prefix}:{local}" if prefix else local
        return tag

    @staticmethod
    def _local(tag: str) -> str:
        return tag.rsplit("}", 1)[-1]

    def _flatten(self, elem: ET.Element) -> RawRecord:
        record: RawRecord = {}
        for child in elem:
            key = self._qualified(child.tag)
            if key in record:
                continue  # first occurrence wins
            text = "".join(child.itertext()) if len(child) else (child.text or "")
            if child.attrib or len(child):
                value: Any = {TEXT_KEY: text}
                value.update(child.attrib)
            else:
                value = text
            record[key] = value
        return record
