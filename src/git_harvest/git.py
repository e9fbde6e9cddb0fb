from __future__ import annotations

import datetime as dt
from pathlib import Path
import subprocess

from .errors import RepositoryAccessError


def run_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            timeout=timeout_s,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        return 127, "", str(e)
    return proc.returncode, proc.stdout, proc.stderr


def get_repo_toplevel(candidate: Path) -> Path | None:
    if not candidate.is_dir():
        return None
    code, out, _ = run_git(["rev-parse", "--show-toplevel"], cwd=candidate)
    if code != 0 or not out.strip():
        return None
    return Path(out.strip()).resolve()


def open_repo(location: Path | str) -> Path:
    """Resolve a repository handle to its work-tree root or raise RepositoryAccessError."""
    path = Path(location).expanduser()
    top = get_repo_toplevel(path)
    if top is None:
        raise RepositoryAccessError(f"not a git repository: {path}")
    return top


def resolve_ref(repo: Path, ref: str) -> str:
    r = (ref or "").strip() or "HEAD"
    code, out, err = run_git(["rev-parse", "--verify", "--quiet", f"{r}^{{commit}}"], cwd=repo)
    sha = out.strip()
    if code != 0 or not sha:
        detail = err.strip()[:200]
        raise RepositoryAccessError(f"cannot resolve {r!r} in {repo}" + (f": {detail}" if detail else ""))
    return sha


def get_current_user() -> tuple[str, str]:
    name = ""
    email = ""
    code, out, _ = run_git(["config", "--get", "user.name"], cwd=Path.cwd())
    if code == 0:
        name = out.strip()
    code, out, _ = run_git(["config", "--get", "user.email"], cwd=Path.cwd())
    if code == 0:
        email = out.strip()
    return name, email


def commit_time_bounds(repo: Path, ref: str) -> tuple[dt.datetime | None, dt.datetime | None]:
    """Oldest and newest committer timestamps reachable from `ref` (UTC)."""
    code, out, _ = run_git(["log", "--format=%ct", ref], cwd=repo)
    if code != 0:
        return None, None
    stamps: list[int] = []
    for line in out.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            stamps.append(int(line))
        except ValueError:
            continue
    if not stamps:
        return None, None
    oldest = dt.datetime.fromtimestamp(min(stamps), tz=dt.timezone.utc)
    newest = dt.datetime.fromtimestamp(max(stamps), tz=dt.timezone.utc)
    return oldest, newest
