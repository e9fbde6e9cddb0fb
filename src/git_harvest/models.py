from __future__ import annotations

import dataclasses
import datetime as dt
import enum
from types import MappingProxyType
from typing import Mapping


class TraversalOrder(str, enum.Enum):
    TOPOLOGICAL = "topological"
    REVERSE_CHRONOLOGICAL = "reverse-chronological"
    AUTHOR_DATE = "author-date"

    @property
    def git_flag(self) -> str:
        return {
            TraversalOrder.TOPOLOGICAL: "--topo-order",
            TraversalOrder.REVERSE_CHRONOLOGICAL: "--date-order",
            TraversalOrder.AUTHOR_DATE: "--author-date-order",
        }[self]

    @classmethod
    def parse(cls, value: str) -> "TraversalOrder":
        v = (value or "").strip().lower().replace("_", "-")
        for order in cls:
            if order.value == v:
                return order
        raise ValueError(f"Invalid order: {value!r} (expected one of: {', '.join(o.value for o in cls)})")


@dataclasses.dataclass(frozen=True)
class FileChange:
    path: str
    added: int | None = 0  # None for binary files
    deleted: int | None = 0


@dataclasses.dataclass(frozen=True)
class Commit:
    sha: str
    parents: tuple[str, ...] = ()
    author_name: str = ""
    author_email: str = ""
    commit_iso: str = ""
    subject: str = ""
    changes: tuple[FileChange, ...] = ()

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1

    @property
    def is_root(self) -> bool:
        return not self.parents


@dataclasses.dataclass(frozen=True)
class TraversalConfig:
    ref: str = "HEAD"
    order: TraversalOrder = TraversalOrder.TOPOLOGICAL
    path_prefixes: frozenset[str] = frozenset()
    exclude_path_prefixes: tuple[str, ...] = ()
    exclude_path_globs: tuple[str, ...] = ()
    since: dt.datetime | None = None  # committer date, inclusive
    until: dt.datetime | None = None  # committer date, inclusive
    max_count: int = 0  # 0 = no limit
    include_merges: bool = False
    strict: bool = False


@dataclasses.dataclass(frozen=True)
class PathDelta:
    path: str
    added: int
    deleted: int


@dataclasses.dataclass(frozen=True)
class NormalizedRecord:
    commit_id: str
    author_key: str
    author_name: str
    author_email: str
    timestamp: dt.datetime
    paths: tuple[PathDelta, ...] = ()
    is_merge: bool = False

    @property
    def added(self) -> int:
        return sum(p.added for p in self.paths)

    @property
    def deleted(self) -> int:
        return sum(p.deleted for p in self.paths)


@dataclasses.dataclass(frozen=True)
class Counters:
    commits: int = 0
    added: int = 0
    removed: int = 0
    first_seen: dt.datetime | None = None
    last_seen: dt.datetime | None = None

    @property
    def changed(self) -> int:
        return self.added + self.removed

    def observed(self, ts: dt.datetime, added: int, removed: int):
        first = self.first_seen
        last = self.last_seen
        # ties: first-seen keeps the earlier arrival, last-seen takes the later one
        if first is None or ts < first:
            first = ts
        if last is None or ts >= last:
            last = ts
        return dataclasses.replace(
            self,
            commits=self.commits + 1,
            added=self.added + added,
            removed=self.removed + removed,
            first_seen=first,
            last_seen=last,
        )


@dataclasses.dataclass(frozen=True)
class AuthorCounters(Counters):
    name: str = ""
    email: str = ""


@dataclasses.dataclass(frozen=True)
class PathCounters(Counters):
    pass


@dataclasses.dataclass(frozen=True)
class WeekCounters:
    commits: int = 0
    added: int = 0
    removed: int = 0

    @property
    def changed(self) -> int:
        return self.added + self.removed

    def observed(self, added: int, removed: int) -> "WeekCounters":
        return WeekCounters(self.commits + 1, self.added + added, self.removed + removed)


@dataclasses.dataclass(frozen=True)
class RunSummary:
    seen: int = 0
    ingested: int = 0
    skipped: int = 0
    duplicates: int = 0


@dataclasses.dataclass(frozen=True)
class SummarySnapshot:
    authors: Mapping[str, AuthorCounters]
    paths: Mapping[str, PathCounters]
    weeks: Mapping[str, WeekCounters]
    summary: RunSummary

    @classmethod
    def empty(cls) -> "SummarySnapshot":
        return cls(
            authors=MappingProxyType({}),
            paths=MappingProxyType({}),
            weeks=MappingProxyType({}),
            summary=RunSummary(),
        )

    @property
    def added_total(self) -> int:
        return sum(a.added for a in self.authors.values())

    @property
    def removed_total(self) -> int:
        return sum(a.removed for a in self.authors.values())

    def to_dict(self) -> dict[str, object]:
        def iso(ts: dt.datetime | None) -> str | None:
            return ts.isoformat() if ts is not None else None

        def counters(c: Counters) -> dict[str, object]:
            return {
                "commits": c.commits,
                "added": c.added,
                "removed": c.removed,
                "changed": c.changed,
                "first_seen": iso(c.first_seen),
                "last_seen": iso(c.last_seen),
            }

        return {
            "summary": dataclasses.asdict(self.summary),
            "authors": {k: {"name": a.name, "email": a.email, **counters(a)} for k, a in self.authors.items()},
            "paths": {k: counters(p) for k, p in self.paths.items()},
            "weeks": {
                k: {"commits": w.commits, "added": w.added, "removed": w.removed, "changed": w.changed}
                for k, w in self.weeks.items()
            },
        }


@dataclasses.dataclass(frozen=True)
class BranchTip:
    name: str
    author_name: str
    author_email: str
