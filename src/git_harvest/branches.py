from __future__ import annotations

from collections import Counter
from pathlib import Path

from .errors import BranchDeleteError, RepositoryAccessError
from .git import run_git
from .identity import AuthorFilter, normalize_email
from .models import BranchTip


def list_remote_branches(repo: Path, remote: str = "origin") -> list[BranchTip]:
    """Remote-tracking branches of `remote` with the author of each tip commit."""
    fmt = "%(refname)\t%(symref)\t%(authorname)\t%(authoremail)"
    code, out, err = run_git(["for-each-ref", f"--format={fmt}", f"refs/remotes/{remote}/"], cwd=repo)
    if code != 0:
        raise RepositoryAccessError(f"git for-each-ref failed in {repo}: {err.strip()[:200]}")
    prefix = f"refs/remotes/{remote}/"
    tips: list[BranchTip] = []
    for line in out.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        while len(parts) < 4:
            parts.append("")
        refname, symref, name, email = parts[:4]
        if symref.strip():
            continue  # origin/HEAD
        if not refname.startswith(prefix):
            continue
        branch = refname[len(prefix) :]
        if not branch:
            continue
        tips.append(
            BranchTip(
                name=branch,
                author_name=name.strip() or "Unknown",
                author_email=email.strip().strip("<>").strip() or "Unknown",
            )
        )
    return tips


def branch_counts(tips: list[BranchTip]) -> dict[str, int]:
    counter: Counter[str] = Counter()
    for t in tips:
        counter[normalize_email(t.author_email) or "unknown"] += 1
    return dict(sorted(counter.items(), key=lambda kv: (-kv[1], kv[0])))


def branches_by_author(tips: list[BranchTip], emails: list[str]) -> list[BranchTip]:
    wanted = AuthorFilter.for_emails(emails)
    return [t for t in tips if wanted.matches(t.author_email)]


def delete_remote_branch(repo: Path, branch: str, remote: str = "origin") -> None:
    code, _, err = run_git(["push", remote, "--delete", branch], cwd=repo)
    if code != 0:
        raise BranchDeleteError(f"failed to delete {remote}/{branch}: {err.strip()[:300]}")
