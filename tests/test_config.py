from __future__ import annotations

import json
from pathlib import Path

import pytest

from git_harvest.config import harvest_config_from, load_config
from git_harvest.models import TraversalOrder


def test_missing_config_is_empty(tmp_path: Path) -> None:
    assert load_config(tmp_path / "config.json") == {}
    cfg = harvest_config_from({})
    assert cfg.order is TraversalOrder.TOPOLOGICAL
    assert cfg.jobs == 1
    assert cfg.remote == "origin"
    assert cfg.strict is False


def test_config_values(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "order": "reverse_chronological",
                "path_prefixes": ["src", " "],
                "exclude_path_globs": ["*.lock"],
                "strict": True,
                "jobs": 4,
                "remote": "upstream",
                "author_aliases": {"Alice@Example.com": ["alice@old.example"]},
            }
        ),
        encoding="utf-8",
    )
    cfg = harvest_config_from(load_config(path))
    assert cfg.order is TraversalOrder.REVERSE_CHRONOLOGICAL
    assert cfg.path_prefixes == ("src",)
    assert cfg.exclude_path_globs == ("*.lock",)
    assert cfg.strict is True
    assert cfg.jobs == 4
    assert cfg.remote == "upstream"
    assert cfg.identities.resolve("", "ALICE@old.example") == "alice@example.com"


def test_invalid_order_rejected() -> None:
    with pytest.raises(ValueError):
        harvest_config_from({"order": "random"})


def test_non_object_config_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)


def test_non_integer_jobs_rejected() -> None:
    with pytest.raises(ValueError, match="jobs"):
        harvest_config_from({"jobs": "many"})
    with pytest.raises(ValueError, match="jobs"):
        harvest_config_from({"jobs": [2]})
    assert harvest_config_from({"jobs": "3"}).jobs == 3


def test_invalid_json_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(path)
