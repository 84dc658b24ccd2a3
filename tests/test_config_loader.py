from __future__ import annotations

import json
from pathlib import Path

from random_level.misc.config_loader import (
    SearchSettings,
    coerce_delay,
    coerce_positive_int,
    load_config,
    settings_from_mapping,
)


def test_coerce_positive_int_clamps_invalid_values() -> None:
    assert coerce_positive_int(None, 12) == 12
    assert coerce_positive_int(0, 12) == 1
    assert coerce_positive_int(-9, 12) == 1
    assert coerce_positive_int(25, 12, maximum=8) == 8


def test_coerce_delay_rejects_negative_and_garbage() -> None:
    assert coerce_delay("0.25", 1.0) == 0.25
    assert coerce_delay(-1, 1.0) == 1.0
    assert coerce_delay("soon", 0.5) == 0.5


def test_settings_from_mapping_keeps_defaults_for_missing_keys() -> None:
    settings = settings_from_mapping({"max_retries": "2", "safe_delay": 0, "glitch_page": "oops"})
    assert settings.max_retries == 2
    assert settings.safe_delay == 0.0
    assert settings.glitch_page == 1000
    assert settings.search_delay == 0.75
    assert settings.is_unbounded_marker(501)
    assert settings.is_unbounded_marker(1000)
    assert not settings.is_unbounded_marker(500)


def test_load_config_reads_file_and_tolerates_missing_one(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("\ufeff" + json.dumps({"search": {"retry_delay": 2.5}}), encoding="utf-8")
    assert settings_from_mapping(load_config(path)["search"]).retry_delay == 2.5
    assert load_config(tmp_path / "absent.json") == {}


def test_shipped_config_matches_defaults() -> None:
    shipped = load_config(Path(__file__).resolve().parent.parent / "config" / "config.json")
    assert settings_from_mapping(shipped["search"]) == SearchSettings()
