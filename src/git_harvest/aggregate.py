from __future__ import annotations

import dataclasses
import datetime as dt
import enum
import threading
from types import MappingProxyType

from .models import AuthorCounters, NormalizedRecord, PathCounters, RunSummary, SummarySnapshot, WeekCounters


class AggregatorState(str, enum.Enum):
    EMPTY = "empty"
    INGESTING = "ingesting"


def week_start_key(ts: dt.datetime) -> str:
    d_utc = ts.astimezone(dt.timezone.utc) if ts.tzinfo is not None else ts
    date_utc = d_utc.date()
    week_start = date_utc - dt.timedelta(days=date_utc.weekday())
    return f"{week_start.isoformat()}T00:00:00Z"


def _usable(record: object) -> bool:
    if not isinstance(record, NormalizedRecord):
        return False
    if not record.commit_id or not record.author_key:
        return False
    if not isinstance(record.timestamp, dt.datetime):
        return False
    try:
        for p in record.paths:
            if not p.path or int(p.added) < 0 or int(p.deleted) < 0:
                return False
    except (AttributeError, TypeError, ValueError):
        return False
    return True


class Aggregator:
    """
    Streaming fold of normalized records into per-author, per-path and per-week counters.

    `ingest` is safe to call from several producer threads; the lock is the only
    serialization point. Counter values are immutable, so `snapshot` copies the
    three dicts under the lock and hands out read-only views.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._authors: dict[str, AuthorCounters] = {}
        self._paths: dict[str, PathCounters] = {}
        self._weeks: dict[str, WeekCounters] = {}
        self._ingested_ids: set[str] = set()
        self._seen = 0
        self._skipped = 0
        self._duplicates = 0
        self._skip_reasons: list[str] = []
        self._state = AggregatorState.EMPTY

    @property
    def state(self) -> AggregatorState:
        return self._state

    @property
    def skip_reasons(self) -> list[str]:
        with self._lock:
            return list(self._skip_reasons)

    def ingest(self, record: NormalizedRecord) -> bool:
        """Fold one record. Returns False for duplicates and unusable input; never raises."""
        with self._lock:
            self._state = AggregatorState.INGESTING
            self._seen += 1
            if not _usable(record):
                self._skipped += 1
                self._skip_reasons.append(f"unusable record: {record!r}"[:200])
                return False
            if record.commit_id in self._ingested_ids:
                self._duplicates += 1
                return False
            self._ingested_ids.add(record.commit_id)

            ts = record.timestamp
            added = record.added
            removed = record.deleted

            author = self._authors.get(record.author_key)
            if author is None:
                author = AuthorCounters(name=record.author_name, email=record.author_email)
            elif not author.name and record.author_name:
                author = dataclasses.replace(author, name=record.author_name)
            self._authors[record.author_key] = author.observed(ts, added, removed)

            for p in record.paths:
                cur = self._paths.get(p.path) or PathCounters()
                self._paths[p.path] = cur.observed(ts, p.added, p.deleted)

            wk = week_start_key(ts)
            self._weeks[wk] = (self._weeks.get(wk) or WeekCounters()).observed(added, removed)
            return True

    def mark_skipped(self, reason: str = "") -> None:
        with self._lock:
            self._state = AggregatorState.INGESTING
            self._seen += 1
            self._skipped += 1
            if reason:
                self._skip_reasons.append(reason)

    def snapshot(self) -> SummarySnapshot:
        with self._lock:
            authors = dict(self._authors)
            paths = dict(self._paths)
            weeks = dict(self._weeks)
            summary = RunSummary(
                seen=self._seen,
                ingested=len(self._ingested_ids),
                skipped=self._skipped,
                duplicates=self._duplicates,
            )
        return SummarySnapshot(
            authors=MappingProxyType(authors),
            paths=MappingProxyType(paths),
            weeks=MappingProxyType(weeks),
            summary=summary,
        )

    def reset(self) -> None:
        with self._lock:
            self._authors = {}
            self._paths = {}
            self._weeks = {}
            self._ingested_ids = set()
            self._seen = 0
            self._skipped = 0
            self._duplicates = 0
            self._skip_reasons = []
            self._state = AggregatorState.EMPTY
