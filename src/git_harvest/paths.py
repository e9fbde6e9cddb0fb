from __future__ import annotations

import fnmatch
from typing import Iterable


def _clean(path: str) -> str:
    p = path.replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    return p.lstrip("/")


_C_ESCAPES = {"a": 7, "b": 8, "t": 9, "n": 10, "v": 11, "f": 12, "r": 13, '"': 34, "\\": 92}


def unquote_c_path(path: str) -> str:
    """Undo git's C-style quoting (`"dir/caf\\303\\251.md"`); unquoted input is returned as is."""
    if len(path) < 2 or not (path.startswith('"') and path.endswith('"')):
        return path
    body = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.extend(ch.encode("utf-8"))
            i += 1
            continue
        nxt = body[i + 1]
        octal = body[i + 1 : i + 4]
        if len(octal) == 3 and all(c in "01234567" for c in octal):
            out.append(int(octal, 8) & 0xFF)
            i += 4
        elif nxt in _C_ESCAPES:
            out.append(_C_ESCAPES[nxt])
            i += 2
        else:
            out.extend(nxt.encode("utf-8"))
            i += 2
    return out.decode("utf-8", errors="replace")


def normalize_numstat_path(path: str) -> str:
    p = unquote_c_path(path.strip())
    # `git log --numstat` renders renames as: src/{old => new}/file.py, src/{old.py => new.py} or old => new
    if " => " in p:
        if "{" in p and "}" in p:
            head, rest = p.split("{", 1)
            inner, tail = rest.split("}", 1)
            new = inner.split(" => ", 1)[-1]
            p = f"{head}{new}{tail}"
            while "//" in p:
                p = p.replace("//", "/")
        else:
            p = p.split(" => ")[-1]
    return _clean(p.strip())


def matches_prefix(path: str, prefixes: Iterable[str]) -> bool:
    p = _clean(path)
    for pref in prefixes:
        pr = _clean(pref or "").rstrip("/")
        if not pr:
            return True
        if p == pr or p.startswith(pr + "/"):
            return True
    return False


def should_exclude_path(path: str, exclude_prefixes: Iterable[str], exclude_globs: Iterable[str]) -> bool:
    p = _clean(path)
    for pref in exclude_prefixes:
        pr = _clean(pref or "")
        if not pr:
            continue
        if not pr.endswith("/"):
            pr = pr + "/"
        if p.startswith(pr) or f"/{pr}" in p:
            return True
    for pat in exclude_globs:
        if pat and fnmatch.fnmatch(p, pat):
            return True
    return False


def path_selected(
    path: str,
    *,
    include_prefixes: Iterable[str],
    exclude_prefixes: Iterable[str] = (),
    exclude_globs: Iterable[str] = (),
) -> bool:
    include = list(include_prefixes)
    if include and not matches_prefix(path, include):
        return False
    return not should_exclude_path(path, exclude_prefixes, exclude_globs)
