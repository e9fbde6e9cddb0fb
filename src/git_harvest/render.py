from __future__ import annotations

import json
from pathlib import Path

from .models import BranchTip, SummarySnapshot

BANNER = r"""
+------------------------------------------------------------------------+
|                              git-harvest                               |
+------------------------------------------------------------------------+
""".strip("\n")


def fmt_int(n: int) -> str:
    return f"{int(n):,}"


def trunc(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    if max_len <= 1:
        return s[:max_len]
    return s[: max_len - 1] + "…"


def bar(value: int, max_value: int, width: int = 22) -> str:
    if max_value <= 0:
        filled = 0
    else:
        filled = int(round((value / max_value) * width))
    filled = max(0, min(width, filled))
    return "[" + ("#" * filled) + ("-" * (width - filled)) + "]"


def render_run_summary(snapshot: SummarySnapshot) -> str:
    s = snapshot.summary
    return (
        f"Commits seen: {fmt_int(s.seen)}  ingested: {fmt_int(s.ingested)}  "
        f"skipped: {fmt_int(s.skipped)}  duplicates: {fmt_int(s.duplicates)}"
    )


def render_summary(snapshot: SummarySnapshot, *, top_n: int = 10) -> str:
    lines: list[str] = [BANNER, ""]
    lines.append(
        f"Authors: {fmt_int(len(snapshot.authors))}  Paths: {fmt_int(len(snapshot.paths))}  "
        f"Weeks: {fmt_int(len(snapshot.weeks))}"
    )
    lines.append(f"Lines: +{fmt_int(snapshot.added_total)} / -{fmt_int(snapshot.removed_total)}")
    lines.append("")

    authors = sorted(snapshot.authors.items(), key=lambda kv: (-kv[1].commits, -kv[1].changed, kv[0]))[:top_n]
    if authors:
        lines.append("Top authors (by commits)")
        max_commits = authors[0][1].commits
        for key, a in authors:
            label = trunc(a.name or key, 28)
            lines.append(
                f"  {label:<28} {bar(a.commits, max_commits)} {fmt_int(a.commits):>7} commits  "
                f"+{fmt_int(a.added)} / -{fmt_int(a.removed)}"
            )
        lines.append("")

    paths = sorted(snapshot.paths.items(), key=lambda kv: (-kv[1].changed, kv[0]))[:top_n]
    if paths:
        lines.append("Top paths (by lines changed)")
        max_changed = paths[0][1].changed
        for path, p in paths:
            lines.append(
                f"  {trunc(path, 40):<40} {bar(p.changed, max_changed)} {fmt_int(p.changed):>9}  "
                f"({fmt_int(p.commits)} commits)"
            )
        lines.append("")

    lines.append(render_run_summary(snapshot))
    return "\n".join(lines)


def render_branch_counts(counts: dict[str, int], total: int) -> str:
    lines = ["Branches per user:"]
    for email, n in counts.items():
        lines.append(f"{email}: {n}")
    lines.append("=========================")
    lines.append(f" Total Remote Branches: {total}")
    return "\n".join(lines)


def render_branch_list(tips: list[BranchTip]) -> str:
    return "\n".join(t.name for t in tips)


def write_json(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, sort_keys=False), encoding="utf-8")
