from __future__ import annotations

import argparse
import datetime as dt
import sys
from pathlib import Path

from .aggregate import Aggregator
from .branches import branch_counts, branches_by_author, delete_remote_branch, list_remote_branches
from .config import HarvestConfig, harvest_config_from, load_config
from .errors import BranchDeleteError, HarvestError
from .git import get_current_user, open_repo
from .harvest import harvest
from .models import TraversalConfig, TraversalOrder
from .render import render_branch_counts, render_branch_list, render_run_summary, render_summary, write_json


def _parse_when(value: str) -> dt.datetime:
    s = (value or "").strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        if len(s) == 10:
            d = dt.datetime.combine(dt.date.fromisoformat(s), dt.time())
        else:
            d = dt.datetime.fromisoformat(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r} (expected YYYY-MM-DD or ISO-8601)") from None
    if d.tzinfo is None:
        d = d.replace(tzinfo=dt.timezone.utc)
    return d


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("-l", "--location", type=Path, default=Path("."), help="Location of the repository.")
    p.add_argument("--config", type=Path, default=Path("config.json"), help="Path to config.json.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="git-harvest", description="Harvest per-author and per-path stats from git history.")
    _add_common(parser)
    parser.add_argument("--ref", type=str, default="HEAD", help="Starting reference.")
    parser.add_argument(
        "--order",
        choices=[o.value for o in TraversalOrder],
        default=None,
        help="Traversal order (default: config `order`, else topological).",
    )
    parser.add_argument("--path", dest="paths", action="append", default=[], help="Only count changes under this path prefix (repeatable).")
    parser.add_argument("--since", type=_parse_when, default=None, help="Only commits on/after this committer date.")
    parser.add_argument("--until", type=_parse_when, default=None, help="Only commits on/before this committer date.")
    parser.add_argument("--max-count", type=int, default=0, help="Stop after N commits (0 = no limit).")
    parser.add_argument("--include-merges", action="store_true", help="Include merge commits.")
    parser.add_argument("--strict", action="store_true", help="Abort on unresolved parents instead of skipping them.")
    parser.add_argument("--jobs", type=int, default=0, help="Parallel readers over date windows (0 = config `jobs`, else 1).")
    parser.add_argument("--top", type=int, default=10, help="Rows per table in the text summary.")
    parser.add_argument("--json", type=Path, default=None, help="Also write the snapshot as JSON to this path.")
    return parser


def _traversal_config(args: argparse.Namespace, cfg: HarvestConfig) -> TraversalConfig:
    prefixes = list(args.paths) or list(cfg.path_prefixes)
    return TraversalConfig(
        ref=str(args.ref or "HEAD"),
        order=TraversalOrder.parse(args.order) if args.order else cfg.order,
        path_prefixes=frozenset(p for p in prefixes if p.strip()),
        exclude_path_prefixes=cfg.exclude_path_prefixes,
        exclude_path_globs=cfg.exclude_path_globs,
        since=args.since,
        until=args.until,
        max_count=max(0, int(args.max_count)),
        include_merges=bool(args.include_merges or cfg.include_merges),
        strict=bool(args.strict or cfg.strict),
    )


def _load_harvest_config(path: Path) -> HarvestConfig | None:
    try:
        return harvest_config_from(load_config(path))
    except ValueError as e:
        print(f"Error: invalid config {path}: {e}", file=sys.stderr)
        return None


def run_stats(argv: list[str]) -> int:
    args = _build_parser().parse_args(argv)
    cfg = _load_harvest_config(args.config)
    if cfg is None:
        return 2
    traversal = _traversal_config(args, cfg)
    jobs = int(args.jobs) if args.jobs and args.jobs > 0 else cfg.jobs

    print(f"Harvesting {args.location.resolve()} from {traversal.ref} ({traversal.order.value}, jobs={jobs})...")
    agg = Aggregator()
    try:
        result = harvest(args.location, traversal, aggregator=agg, identities=cfg.identities, jobs=jobs)
    except HarvestError as e:
        print(render_run_summary(agg.snapshot()))
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print(render_run_summary(agg.snapshot()))
        print("Interrupted.", file=sys.stderr)
        return 130

    print(render_summary(result.snapshot, top_n=max(1, int(args.top))))
    for err in result.errors:
        print(f"Warning: {err}", file=sys.stderr)
    if args.json is not None:
        data = result.snapshot.to_dict()
        data["errors"] = list(result.errors)
        data["traversal"] = {
            "ref": traversal.ref,
            "order": traversal.order.value,
            "path_prefixes": sorted(traversal.path_prefixes),
            **({"jobs": jobs} if jobs > 1 else {}),
        }
        write_json(args.json, data)
        print(f"Wrote {args.json}")
    return 0


def _prompt_str(prompt: str) -> str:
    try:
        return input(prompt).strip()
    except EOFError:
        return ""


def _prompt_bool(prompt: str, *, default: bool) -> bool:
    suffix = "[Y/n]" if default else "[y/N]"
    ans = _prompt_str(f"{prompt} {suffix} ").lower()
    if not ans:
        return default
    if ans in ("y", "yes"):
        return True
    if ans in ("n", "no"):
        return False
    return default


def _branch_parser(command: str, description: str, *, with_email: bool) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog=f"git-harvest {command}", description=description)
    _add_common(p)
    p.add_argument("--remote", type=str, default="", help="Remote name (default: config `remote`, else origin).")
    if with_email:
        p.add_argument("-e", "--email", type=str, default="", help="Filter branches by tip author email (default: git config user.email).")
    if command == "cleanup":
        p.add_argument("--yes", action="store_true", help="Delete without asking for each branch.")
    return p


def run_branches(command: str, argv: list[str]) -> int:
    descriptions = {
        "branches": "Count remote branches per tip author.",
        "list": "List remote branches whose tip commit was authored by an email.",
        "cleanup": "Delete remote branches that are no more needed.",
    }
    p = _branch_parser(command, descriptions[command], with_email=command != "branches")
    args = p.parse_args(argv)
    cfg = _load_harvest_config(args.config)
    if cfg is None:
        return 2
    remote = str(args.remote or cfg.remote or "origin")

    try:
        repo = open_repo(args.location)
        tips = list_remote_branches(repo, remote=remote)
    except HarvestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if command == "branches":
        print(render_branch_counts(branch_counts(tips), len(tips)))
        return 0

    email = str(args.email or "").strip() or get_current_user()[1]
    if not email:
        print("Error: no --email given and git config user.email is not set.", file=sys.stderr)
        return 2
    print(f"filter_email: {email}\n==========================")
    mine = branches_by_author(tips, [email])

    if command == "list":
        if mine:
            print(render_branch_list(mine))
        return 0

    failures = 0
    for tip in mine:
        if not args.yes and not _prompt_bool(f"Do you want to delete the branch '{tip.name}'?", default=False):
            continue
        try:
            delete_remote_branch(repo, tip.name, remote=remote)
        except BranchDeleteError as e:
            print(f"Error: {e}", file=sys.stderr)
            failures += 1
            continue
        print(f"Deleted {remote}/{tip.name}")
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] in ("-h", "--help"):
        p = _build_parser()
        p.print_help()
        print("")
        print("commands:")
        print("  stats      Harvest commit history (default when no command is given).")
        print("  branches   Count remote branches per tip author.")
        print("  list       List remote branches authored by an email.")
        print("  cleanup    Delete remote branches authored by an email, asking for each.")
        print("")
        print("Branch counts per user (the old `stats`) are now `branches`; `stats` harvests history.")
        print("Run `git-harvest <command> --help` for command-specific options.")
        return 0
    if argv and argv[0] in ("branches", "list", "cleanup"):
        return run_branches(argv[0], argv[1:])
    if argv and argv[0] == "stats":
        argv = argv[1:]
    return run_stats(argv)


if __name__ == "__main__":
    raise SystemExit(main())
