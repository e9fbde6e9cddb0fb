from __future__ import annotations

import datetime as dt

from .errors import MalformedCommitError
from .identity import IdentityResolver
from .models import Commit, NormalizedRecord, PathDelta

_DEFAULT_IDENTITIES = IdentityResolver()


def clamp_count(value: int | None) -> int:
    if value is None:
        return 0
    try:
        n = int(value)
    except (TypeError, ValueError):
        return 0
    return n if n > 0 else 0


def parse_commit_time(commit_iso: str) -> dt.datetime | None:
    s = (commit_iso or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        d = dt.datetime.fromisoformat(s)
    except ValueError:
        return None
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d


def extract_record(commit: Commit, identities: IdentityResolver | None = None) -> NormalizedRecord:
    """
    Reduce a raw commit to what the aggregator needs.

    Pure: no I/O, no shared state. Author identity is folded case-insensitively by
    email (then through `identities` aliases), negative or missing line counts
    become 0, and a change listed twice for the same path is merged.
    Raises MalformedCommitError when the id, the author or the timestamp is absent.
    """
    sha = (commit.sha or "").strip()
    if not sha:
        raise MalformedCommitError("", "missing commit id")
    name = (commit.author_name or "").strip()
    email = (commit.author_email or "").strip()
    resolver = identities or _DEFAULT_IDENTITIES
    key = resolver.resolve(name, email)
    if not key:
        raise MalformedCommitError(sha, "missing author")
    if not (commit.commit_iso or "").strip():
        raise MalformedCommitError(sha, "missing timestamp")
    ts = parse_commit_time(commit.commit_iso)
    if ts is None:
        raise MalformedCommitError(sha, f"unparsable timestamp {commit.commit_iso!r}")

    per_path: dict[str, tuple[int, int]] = {}
    for change in commit.changes:
        path = (change.path or "").strip()
        if not path:
            continue
        ins0, del0 = per_path.get(path, (0, 0))
        per_path[path] = (ins0 + clamp_count(change.added), del0 + clamp_count(change.deleted))

    return NormalizedRecord(
        commit_id=sha,
        author_key=key,
        author_name=name,
        author_email=email,
        timestamp=ts,
        paths=tuple(PathDelta(path=p, added=a, deleted=d) for p, (a, d) in per_path.items()),
        is_merge=commit.is_merge,
    )
