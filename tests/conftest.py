from __future__ import annotations

import json
import os
import subprocess
from pathlib import Path
from typing import Callable

import pytest

FAKE_GIT_TEMPLATE = """#!/usr/bin/env python3
import json
import os
import sys

LOG = json.loads({log!r})
KNOWN = set(json.loads({known!r}))
HEAD = {head!r}
STDERR_CHARS = {stderr_chars!r}
LOG_EXIT = {log_exit!r}
ENDLESS = {endless!r}


def main() -> int:
    args = sys.argv[1:]
    while args[:1] == ["-c"]:
        args = args[2:]
    if args[:2] == ["rev-parse", "--show-toplevel"]:
        print(os.getcwd())
        return 0
    if args and args[0] == "rev-parse":
        ref = args[-1].split("^", 1)[0]
        sha = HEAD if ref == "HEAD" else (ref if ref in KNOWN else "")
        if not sha:
            return 1
        print(sha)
        return 0
    if args and args[0] == "log":
        for i, line in enumerate(LOG):
            sys.stdout.write(line + "\\n")
            if i == 1 and STDERR_CHARS:
                sys.stdout.flush()
                sys.stderr.write("E" * STDERR_CHARS)
                sys.stderr.flush()
        sys.stdout.flush()
        n = 0
        while ENDLESS:
            n += 1
            sys.stdout.write("@@@e%d\\t\\tA\\ta@e\\t2025-01-01T00:00:00Z\\tloop\\n1\\t0\\tf.py\\n" % n)
            sys.stdout.flush()
        return LOG_EXIT
    if args[:2] == ["cat-file", "--batch-check"]:
        for line in sys.stdin:
            sha = line.strip()
            if sha in KNOWN:
                sys.stdout.write(sha + " commit 100\\n")
            else:
                sys.stdout.write(sha + " missing\\n")
            sys.stdout.flush()
        return 0
    sys.stderr.write("unexpected args: " + " ".join(sys.argv) + "\\n")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
"""


@pytest.fixture
def fake_git(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[..., Path]:
    """
    Put a scripted `git` first on PATH. Returns a factory taking the `git log`
    output lines; yields the (empty) repo directory to point the reader at.
    """

    def make(
        log_lines: list[str],
        *,
        known: list[str] | None = None,
        head: str = "HEAD0",
        stderr_chars: int = 0,
        log_exit: int = 0,
        endless: bool = False,
    ) -> Path:
        repo_dir = tmp_path / "repo"
        repo_dir.mkdir(exist_ok=True)
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        script = bin_dir / "git"
        script.write_text(
            FAKE_GIT_TEMPLATE.format(
                log=json.dumps(log_lines),
                known=json.dumps(sorted(set(known or []) | {head})),
                head=head,
                stderr_chars=stderr_chars,
                log_exit=log_exit,
                endless=endless,
            ),
            encoding="utf-8",
        )
        script.chmod(0o755)
        monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))
        return repo_dir

    return make


def _run(cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> str:
    proc = subprocess.run(cmd, cwd=str(cwd), env=env, check=True, capture_output=True, text=True)
    return proc.stdout


class GitRepo:
    def __init__(self, path: Path) -> None:
        self.path = path

    def git(self, *args: str, env: dict[str, str] | None = None) -> str:
        return _run(["git", *args], cwd=self.path, env=env).strip()

    def commit(self, files: dict[str, str], *, message: str, email: str, name: str = "Test User", date: str) -> str:
        for rel, content in files.items():
            p = self.path / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")
            self.git("add", rel)
        env = os.environ.copy()
        env.update(
            {
                "GIT_AUTHOR_NAME": name,
                "GIT_AUTHOR_EMAIL": email,
                "GIT_AUTHOR_DATE": date,
                "GIT_COMMITTER_NAME": name,
                "GIT_COMMITTER_EMAIL": email,
                "GIT_COMMITTER_DATE": date,
            }
        )
        self.git("commit", "-q", "-m", message, env=env)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    repo = tmp_path / "work"
    repo.mkdir()
    _run(["git", "init", "-q"], cwd=repo)
    _run(["git", "config", "user.name", "Test User"], cwd=repo)
    _run(["git", "config", "user.email", "test@example.com"], cwd=repo)
    _run(["git", "config", "commit.gpgsign", "false"], cwd=repo)
    return GitRepo(repo)
