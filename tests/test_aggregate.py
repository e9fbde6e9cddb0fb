from __future__ import annotations

import dataclasses
import datetime as dt
import itertools
import threading

import pytest

from git_harvest.aggregate import Aggregator, AggregatorState, week_start_key
from git_harvest.extract import extract_record
from git_harvest.models import Commit, FileChange, NormalizedRecord, PathDelta


def _rec(sha: str, email: str, day: int, changes: dict[str, tuple[int, int]], *, hour: int = 12) -> NormalizedRecord:
    return NormalizedRecord(
        commit_id=sha,
        author_key=email.lower(),
        author_name=email.split("@")[0],
        author_email=email,
        timestamp=dt.datetime(2025, 1, day, hour, tzinfo=dt.timezone.utc),
        paths=tuple(PathDelta(p, a, d) for p, (a, d) in changes.items()),
    )


def _state(agg: Aggregator) -> tuple[dict, dict, dict]:
    s = agg.snapshot()
    return dict(s.authors), dict(s.paths), dict(s.weeks)


def test_ingest_is_idempotent_by_commit_id() -> None:
    r = _rec("a1", "alice@example.com", 2, {"a.py": (3, 1)})
    once = Aggregator()
    once.ingest(r)
    twice = Aggregator()
    assert twice.ingest(r) is True
    assert twice.ingest(r) is False
    assert _state(once) == _state(twice)
    assert twice.snapshot().summary.duplicates == 1
    assert twice.snapshot().summary.ingested == 1


def test_totals_are_order_independent() -> None:
    records = [
        _rec("a1", "alice@example.com", 2, {"a.py": (3, 1)}),
        _rec("b1", "bob@example.com", 3, {"b.py": (10, 0), "a.py": (1, 1)}),
        _rec("a2", "alice@example.com", 5, {"c.py": (2, 7)}),
        _rec("a3", "alice@example.com", 1, {"a.py": (0, 4)}),
    ]
    expected = None
    for perm in itertools.permutations(records):
        agg = Aggregator()
        for r in perm:
            agg.ingest(r)
        snap = agg.snapshot()
        totals = {k: (a.commits, a.added, a.removed, a.first_seen, a.last_seen) for k, a in snap.authors.items()}
        if expected is None:
            expected = totals
        assert totals == expected
    assert expected is not None
    assert expected["alice@example.com"][:3] == (3, 5, 12)


def test_author_commit_counts_are_monotonic() -> None:
    agg = Aggregator()
    last = 0
    for i in range(1, 8):
        agg.ingest(_rec(f"c{i}", "alice@example.com", i, {"a.py": (i, 0)}))
        agg.ingest(_rec(f"c{i}", "alice@example.com", i, {"a.py": (i, 0)}))
        n = agg.snapshot().authors["alice@example.com"].commits
        assert n >= last
        last = n
    assert last == 7


def test_negative_deletions_contribute_zero() -> None:
    c = Commit(
        sha="n1",
        author_name="A",
        author_email="a@example.com",
        commit_iso="2025-01-01T00:00:00Z",
        changes=(FileChange("a.py", 2, -5),),
    )
    agg = Aggregator()
    agg.ingest(extract_record(c))
    snap = agg.snapshot()
    assert snap.authors["a@example.com"].removed == 0
    assert snap.paths["a.py"].removed == 0
    assert snap.removed_total == 0


def test_case_different_emails_share_a_bucket() -> None:
    base = dict(author_name="Alice", commit_iso="2025-01-01T00:00:00Z", changes=(FileChange("a.py", 1, 2),))
    agg = Aggregator()
    agg.ingest(extract_record(Commit(sha="x1", author_email="alice@example.com", **base)))
    agg.ingest(extract_record(Commit(sha="x2", author_email="Alice@Example.com", **base)))
    snap = agg.snapshot()
    assert list(snap.authors) == ["alice@example.com"]
    a = snap.authors["alice@example.com"]
    assert (a.commits, a.added, a.removed) == (2, 2, 4)


def test_root_and_child_give_one_author_with_two_commits() -> None:
    root = Commit(sha="r", parents=(), author_name="A", author_email="a@example.com", commit_iso="2025-01-01T00:00:00Z")
    child = Commit(sha="c", parents=("r",), author_name="A", author_email="a@example.com", commit_iso="2025-01-02T00:00:00Z")
    agg = Aggregator()
    for c in (child, root):
        agg.ingest(extract_record(c))
    snap = agg.snapshot()
    assert len(snap.authors) == 1
    assert snap.authors["a@example.com"].commits == 2


def test_snapshot_after_reset_is_empty() -> None:
    agg = Aggregator()
    agg.ingest(_rec("a1", "alice@example.com", 2, {"a.py": (3, 1)}))
    assert agg.state is AggregatorState.INGESTING
    agg.reset()
    assert agg.state is AggregatorState.EMPTY
    snap = agg.snapshot()
    assert dict(snap.authors) == {}
    assert dict(snap.paths) == {}
    assert snap.summary.seen == 0
    # ids are forgotten too
    assert agg.ingest(_rec("a1", "alice@example.com", 2, {"a.py": (3, 1)})) is True


def test_first_and_last_seen_tie_break() -> None:
    agg = Aggregator()
    agg.ingest(_rec("t1", "alice@example.com", 3, {}))
    agg.ingest(_rec("t2", "Alice@example.com", 3, {}))
    agg.ingest(_rec("t0", "alice@example.com", 1, {}))
    a = agg.snapshot().authors["alice@example.com"]
    assert a.first_seen == dt.datetime(2025, 1, 1, 12, tzinfo=dt.timezone.utc)
    assert a.last_seen == dt.datetime(2025, 1, 3, 12, tzinfo=dt.timezone.utc)
    # display name comes from the first record seen for the author
    assert a.name == "alice"


def test_unusable_input_is_skipped_not_raised() -> None:
    agg = Aggregator()
    assert agg.ingest("not a record") is False  # type: ignore[arg-type]
    bad = dataclasses.replace(_rec("b1", "a@example.com", 1, {}), paths=(PathDelta("x", -1, 0),))
    assert agg.ingest(bad) is False
    agg.mark_skipped("malformed commit zz: missing author")
    s = agg.snapshot().summary
    assert (s.seen, s.ingested, s.skipped) == (3, 0, 3)
    assert agg.state is AggregatorState.INGESTING
    assert "malformed commit zz: missing author" in agg.skip_reasons


def test_paths_and_weeks_in_insertion_order() -> None:
    agg = Aggregator()
    agg.ingest(_rec("a1", "alice@example.com", 7, {"z.py": (1, 0), "a.py": (1, 0)}))
    agg.ingest(_rec("a2", "bob@example.com", 1, {"m.py": (1, 0)}))
    snap = agg.snapshot()
    assert list(snap.paths) == ["z.py", "a.py", "m.py"]
    assert list(snap.authors) == ["alice@example.com", "bob@example.com"]
    assert list(snap.weeks) == ["2025-01-06T00:00:00Z", "2024-12-30T00:00:00Z"]
    assert snap.weeks["2025-01-06T00:00:00Z"].commits == 1


def test_week_start_key_uses_utc_monday() -> None:
    ts = dt.datetime(2025, 1, 6, 1, 0, tzinfo=dt.timezone(dt.timedelta(hours=3)))
    assert week_start_key(ts) == "2024-12-30T00:00:00Z"


def test_snapshot_is_read_only_and_detached() -> None:
    agg = Aggregator()
    agg.ingest(_rec("a1", "alice@example.com", 2, {"a.py": (3, 1)}))
    snap = agg.snapshot()
    with pytest.raises(TypeError):
        snap.authors["x"] = snap.authors["alice@example.com"]  # type: ignore[index]
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.authors["alice@example.com"].commits = 99  # type: ignore[misc]
    agg.ingest(_rec("a2", "alice@example.com", 3, {"a.py": (1, 1)}))
    assert snap.authors["alice@example.com"].commits == 1
    assert agg.snapshot().authors["alice@example.com"].commits == 2


def test_concurrent_ingest_and_snapshot() -> None:
    agg = Aggregator()
    per_thread = 300
    threads_n = 4
    torn: list[str] = []

    def produce(t: int) -> None:
        for i in range(per_thread):
            agg.ingest(_rec(f"t{t}-{i}", "alice@example.com", 1 + (i % 28), {"a.py": (1, 1)}))

    def observe() -> None:
        for _ in range(200):
            s = agg.snapshot()
            a = s.authors.get("alice@example.com")
            if a is not None and not (a.commits == a.added == a.removed == s.summary.ingested):
                torn.append(repr((a, s.summary)))

    workers = [threading.Thread(target=produce, args=(t,)) for t in range(threads_n)]
    watcher = threading.Thread(target=observe)
    for w in workers:
        w.start()
    watcher.start()
    for w in workers:
        w.join()
    watcher.join()

    assert torn == []
    a = agg.snapshot().authors["alice@example.com"]
    assert a.commits == per_thread * threads_n
    assert agg.snapshot().paths["a.py"].added == per_thread * threads_n
