from __future__ import annotations

import dataclasses
import subprocess
import threading
from pathlib import Path
from typing import IO

from .errors import CorruptHistoryError, RepositoryAccessError
from .git import open_repo, resolve_ref
from .models import Commit, FileChange, TraversalConfig
from .paths import normalize_numstat_path, path_selected

HEADER = "@@@"
PRETTY = HEADER + "%H\t%P\t%an\t%ae\t%aI\t%s"


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ParentResolver:
    """Checks commit ids against the object database through one long-lived `git cat-file --batch-check`."""

    def __init__(self, repo: Path) -> None:
        self._repo = repo
        self._known: dict[str, bool] = {}
        self._proc: subprocess.Popen[str] | None = None

    def _start(self) -> subprocess.Popen[str]:
        if self._proc is None:
            try:
                self._proc = subprocess.Popen(
                    ["git", "cat-file", "--batch-check"],
                    cwd=str(self._repo),
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    text=True,
                    bufsize=1,
                )
            except OSError as e:
                raise RepositoryAccessError(f"failed to start git cat-file: {e}") from e
        return self._proc

    def remember(self, sha: str) -> None:
        self._known[sha] = True

    def exists(self, sha: str) -> bool:
        cached = self._known.get(sha)
        if cached is not None:
            return cached
        proc = self._start()
        if proc.stdin is None or proc.stdout is None:
            raise RepositoryAccessError("git cat-file started without pipes")
        try:
            proc.stdin.write(sha + "\n")
            proc.stdin.flush()
            reply = proc.stdout.readline().strip()
        except (BrokenPipeError, OSError):
            reply = ""
        parts = reply.split()
        found = len(parts) >= 2 and parts[1] == "commit"
        self._known[sha] = found
        return found

    def close(self) -> None:
        proc = self._proc
        self._proc = None
        if proc is None:
            return
        try:
            if proc.stdin is not None:
                proc.stdin.close()
            proc.wait(timeout=5)
        except (OSError, subprocess.TimeoutExpired):
            proc.kill()
            proc.wait()
        finally:
            if proc.stdout is not None:
                proc.stdout.close()


def build_log_command(start_sha: str, config: TraversalConfig) -> list[str]:
    # core.quotePath=false keeps non-ASCII paths as UTF-8 instead of octal escapes
    cmd = [
        "git",
        "-c",
        "core.quotePath=false",
        "log",
        config.order.git_flag,
        "--date=iso-strict",
        f"--pretty=format:{PRETTY}",
        "--numstat",
    ]
    if not config.include_merges:
        cmd.append("--no-merges")
    if config.since is not None:
        cmd.append(f"--since={config.since.isoformat()}")
    if config.until is not None:
        cmd.append(f"--until={config.until.isoformat()}")
    if config.max_count and config.max_count > 0:
        cmd.append(f"--max-count={int(config.max_count)}")
    cmd.extend([start_sha, "--"])
    return cmd


def parse_header(line: str) -> Commit:
    parts = line[len(HEADER) :].split("\t", 5)
    while len(parts) < 6:
        parts.append("")
    sha, parents, name, email, iso, subject = parts
    return Commit(
        sha=sha.strip(),
        parents=tuple(p for p in parents.split() if p),
        author_name=name,
        author_email=email,
        commit_iso=iso.strip(),
        subject=subject,
    )


def parse_numstat_line(line: str) -> FileChange | None:
    parts = line.split("\t", 2)
    if len(parts) < 3:
        return None
    added_s, deleted_s, raw_path = parts
    path = normalize_numstat_path(raw_path)
    if not path:
        return None

    def count(s: str) -> int | None:
        s = s.strip()
        if s == "-":
            return None
        try:
            return int(s)
        except ValueError:
            return None

    return FileChange(path=path, added=count(added_s), deleted=count(deleted_s))


class HistoryCursor:
    """
    Explicit cursor over `git log --numstat` output.

    Iterating yields `Commit` values; the cursor owns a git subprocess until it is
    exhausted, cancelled or closed. Use it as a context manager so early exits
    release the subprocess.
    """

    def __init__(self, repo: Path, config: TraversalConfig, cancel: CancellationToken | None = None) -> None:
        self.repo = repo
        self.config = config
        self.cancel = cancel or CancellationToken()
        self.errors: list[str] = []
        self.read = 0
        self.emitted = 0
        self.filtered = 0
        self._proc: subprocess.Popen[str] | None = None
        self._stdout: IO[str] | None = None
        self._pending: str | None = None
        self._stderr_chunks: list[str] = []
        self._stderr_thread: threading.Thread | None = None
        self._resolver = ParentResolver(repo)
        self._closed = False
        self._aborted = False

    def open(self) -> "HistoryCursor":
        if self._proc is not None or self._closed:
            return self
        start_sha = resolve_ref(self.repo, self.config.ref)
        cmd = build_log_command(start_sha, self.config)
        try:
            self._proc = subprocess.Popen(
                cmd,
                cwd=str(self.repo),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise RepositoryAccessError(f"failed to start git log: {e}") from e
        self._stdout = self._proc.stdout
        if self._proc.stderr is not None:
            self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
            self._stderr_thread.start()
        return self

    def _drain_stderr(self) -> None:
        proc = self._proc
        if proc is None or proc.stderr is None:
            return
        taken = 0
        max_chars = 50_000
        while True:
            try:
                chunk = proc.stderr.read(8192)
            except (OSError, ValueError):
                return
            if not chunk:
                return
            if taken >= max_chars:
                continue
            take = chunk[: max_chars - taken]
            self._stderr_chunks.append(take)
            taken += len(take)

    def __enter__(self) -> "HistoryCursor":
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __iter__(self) -> "HistoryCursor":
        return self.open()

    def __next__(self) -> Commit:
        while True:
            if self._closed:
                raise StopIteration
            if self.cancel.cancelled:
                self.close()
                raise StopIteration
            if self._proc is None:
                self.open()
            commit = self._read_commit()
            if commit is None:
                self._finish()
                raise StopIteration
            self.read += 1
            commit = self._check_parents(commit)
            selected = self._select_paths(commit)
            if selected is None:
                self.filtered += 1
                continue
            self.emitted += 1
            return selected

    def _readline(self) -> str | None:
        if self._stdout is None:
            return None
        raw = self._stdout.readline()
        if not raw:
            return None
        return raw.rstrip("\n")

    def _read_commit(self) -> Commit | None:
        header = self._pending
        self._pending = None
        while header is None:
            line = self._readline()
            if line is None:
                return None
            if line.startswith(HEADER):
                header = line
        commit = parse_header(header)
        changes: list[FileChange] = []
        while True:
            line = self._readline()
            if line is None:
                break
            if line.startswith(HEADER):
                self._pending = line
                break
            if not line.strip():
                continue
            change = parse_numstat_line(line)
            if change is not None:
                changes.append(change)
        if changes:
            commit = dataclasses.replace(commit, changes=tuple(changes))
        return commit

    def _check_parents(self, commit: Commit) -> Commit:
        if commit.sha:
            self._resolver.remember(commit.sha)
        missing = [p for p in commit.parents if not self._resolver.exists(p)]
        if not missing:
            return commit
        msg = f"commit {commit.sha}: unresolved parent(s) {', '.join(missing)}"
        if self.config.strict:
            self.close()
            raise CorruptHistoryError(msg)
        self.errors.append(msg)
        kept = tuple(p for p in commit.parents if p not in missing)
        return dataclasses.replace(commit, parents=kept)

    def _select_paths(self, commit: Commit) -> Commit | None:
        cfg = self.config
        if not cfg.path_prefixes and not cfg.exclude_path_prefixes and not cfg.exclude_path_globs:
            return commit
        kept = tuple(
            c
            for c in commit.changes
            if path_selected(
                c.path,
                include_prefixes=cfg.path_prefixes,
                exclude_prefixes=cfg.exclude_path_prefixes,
                exclude_globs=cfg.exclude_path_globs,
            )
        )
        if not kept and (commit.changes or cfg.path_prefixes):
            return None
        if len(kept) == len(commit.changes):
            return commit
        return dataclasses.replace(commit, changes=kept)

    def _finish(self) -> None:
        proc = self._proc
        code = proc.wait() if proc is not None else 0
        if self._stderr_thread is not None:
            self._stderr_thread.join()
            self._stderr_thread = None
        self.close()
        if code != 0 and not self._aborted:
            stderr = "".join(self._stderr_chunks).strip()[:500]
            msg = f"git log exited {code}: {stderr}"
            if self.config.strict:
                raise CorruptHistoryError(msg)
            self.errors.append(msg)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        proc = self._proc
        if proc is not None and proc.poll() is None:
            self._aborted = True
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        if self._stdout is not None:
            self._stdout.close()
            self._stdout = None
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=5)
            self._stderr_thread = None
        if proc is not None and proc.stderr is not None:
            proc.stderr.close()
        self._resolver.close()

    @property
    def closed(self) -> bool:
        return self._closed


def read_history(location: Path | str, config: TraversalConfig, cancel: CancellationToken | None = None) -> HistoryCursor:
    """Open a cursor over `location`'s history. Raises RepositoryAccessError up front."""
    repo = open_repo(location)
    return HistoryCursor(repo, config, cancel).open()
