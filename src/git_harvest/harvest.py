from __future__ import annotations

import dataclasses
import datetime as dt
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from .aggregate import Aggregator
from .errors import MalformedCommitError
from .extract import extract_record
from .git import commit_time_bounds, open_repo, resolve_ref
from .history import CancellationToken, HistoryCursor
from .identity import IdentityResolver
from .models import RunSummary, SummarySnapshot, TraversalConfig


@dataclasses.dataclass
class HarvestResult:
    snapshot: SummarySnapshot
    errors: list[str]
    cancelled: bool = False
    windows: int = 1

    @property
    def summary(self) -> RunSummary:
        return self.snapshot.summary


def pump(cursor: HistoryCursor, aggregator: Aggregator, identities: IdentityResolver | None = None) -> None:
    """Drain `cursor` into `aggregator`, counting malformed commits as skipped."""
    with cursor:
        for commit in cursor:
            try:
                record = extract_record(commit, identities)
            except MalformedCommitError as e:
                aggregator.mark_skipped(str(e))
                continue
            aggregator.ingest(record)


def split_windows(oldest: dt.datetime, newest: dt.datetime, n: int) -> list[tuple[dt.datetime, dt.datetime]]:
    """
    Split [oldest, newest] into `n` contiguous committer-date windows.

    git's --since/--until are both inclusive at one-second resolution, so each
    window but the last ends one second before the next one starts.
    """
    if n <= 1 or newest <= oldest:
        return [(oldest, newest)]
    span = newest - oldest
    step = span / n
    if step < dt.timedelta(seconds=1):
        return [(oldest, newest)]
    out: list[tuple[dt.datetime, dt.datetime]] = []
    start = oldest
    for i in range(n):
        end = newest if i == n - 1 else (oldest + step * (i + 1)).replace(microsecond=0)
        out.append((start, end if i == n - 1 else end - dt.timedelta(seconds=1)))
        start = end
    return out


def _windowed_configs(repo: Path, config: TraversalConfig, jobs: int) -> list[TraversalConfig]:
    oldest, newest = commit_time_bounds(repo, config.ref)
    if oldest is None or newest is None:
        return [config]
    if config.since is not None and config.since > oldest:
        oldest = config.since
    if config.until is not None and config.until < newest:
        newest = config.until
    oldest = oldest - dt.timedelta(seconds=1)
    newest = newest + dt.timedelta(seconds=1)
    return [dataclasses.replace(config, since=a, until=b) for a, b in split_windows(oldest, newest, jobs)]


def harvest(
    location: Path | str,
    config: TraversalConfig | None = None,
    *,
    aggregator: Aggregator | None = None,
    identities: IdentityResolver | None = None,
    jobs: int = 1,
    cancel: CancellationToken | None = None,
) -> HarvestResult:
    """
    Walk `location`'s history and fold it into `aggregator` (a fresh one by default).

    With jobs > 1 the history is read as disjoint committer-date windows on a
    thread pool; traversal order is then not preserved, totals are.
    Raises RepositoryAccessError, and CorruptHistoryError in strict mode.
    """
    cfg = config or TraversalConfig()
    repo = open_repo(location)
    agg = aggregator if aggregator is not None else Aggregator()
    token = cancel or CancellationToken()
    resolve_ref(repo, cfg.ref)

    if jobs <= 1 or cfg.max_count:
        configs = [cfg]
    else:
        configs = _windowed_configs(repo, cfg, jobs)

    cursors = [HistoryCursor(repo, c, token) for c in configs]
    if len(cursors) == 1:
        pump(cursors[0], agg, identities)
    else:
        with ThreadPoolExecutor(max_workers=min(jobs, len(cursors))) as ex:
            futs = [ex.submit(pump, cur, agg, identities) for cur in cursors]
            try:
                for fut in as_completed(futs):
                    fut.result()
            except BaseException:
                token.cancel()
                raise

    errors: list[str] = []
    for cur in cursors:
        errors.extend(cur.errors)
    errors.extend(agg.skip_reasons)
    return HarvestResult(
        snapshot=agg.snapshot(),
        errors=errors,
        cancelled=token.cancelled,
        windows=len(cursors),
    )
