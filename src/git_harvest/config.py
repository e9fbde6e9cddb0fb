from __future__ import annotations

import dataclasses
import json
from pathlib import Path

from .identity import IdentityResolver
from .models import TraversalOrder


def load_config(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    data = json.loads(config_path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a JSON object at top level")
    return data


@dataclasses.dataclass(frozen=True)
class HarvestConfig:
    order: TraversalOrder = TraversalOrder.TOPOLOGICAL
    path_prefixes: tuple[str, ...] = ()
    exclude_path_prefixes: tuple[str, ...] = ()
    exclude_path_globs: tuple[str, ...] = ()
    include_merges: bool = False
    strict: bool = False
    jobs: int = 1
    remote: str = "origin"
    identities: IdentityResolver = dataclasses.field(default_factory=IdentityResolver)


def _str_list(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(v).strip() for v in value if str(v).strip())


def _int(value: object, key: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValueError(f"config `{key}`: expected an integer, got {value!r}") from None


def harvest_config_from(config: dict) -> HarvestConfig:
    """Raises ValueError for values of the wrong shape (unknown `order`, non-integer `jobs`)."""
    aliases = config.get("author_aliases") if isinstance(config.get("author_aliases"), dict) else {}
    order_s = str(config.get("order", "") or "").strip()
    return HarvestConfig(
        order=TraversalOrder.parse(order_s) if order_s else TraversalOrder.TOPOLOGICAL,
        path_prefixes=_str_list(config.get("path_prefixes")),
        exclude_path_prefixes=_str_list(config.get("exclude_path_prefixes")),
        exclude_path_globs=_str_list(config.get("exclude_path_globs")),
        include_merges=bool(config.get("include_merges", False)),
        strict=bool(config.get("strict", False)),
        jobs=max(1, _int(config.get("jobs", 1) or 1, "jobs")),
        remote=str(config.get("remote", "origin") or "origin").strip(),
        identities=IdentityResolver.from_config(aliases),
    )
