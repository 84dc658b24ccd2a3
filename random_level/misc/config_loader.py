"""Handles loading JSON configuration and the search tuning knobs."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("config/config.json")


@dataclass(slots=True, frozen=True)
class SearchSettings:
    """Constants steering discovery, chaos probing and retry pacing."""

    page_size: int = 10
    glitch_page: int = 1000
    capped_page: int = 501
    capped_count: int = 10
    untrusted_total: int = 9990
    max_retries: int = 5
    calc_exact_max_steps: int = 10
    chaos_min_id: int = 128
    chaos_fallback_max_id: int = 100_000_000
    start_delay: float = 0.0
    resolve_delay: float = 0.1
    safe_delay: float = 0.5
    search_delay: float = 0.75
    retry_delay: float = 1.0
    chaos_delay: float = 0.5

    def is_unbounded_marker(self, page: int) -> bool:
        """Cached pages at the cap or past the glitch boundary mean 'unbounded'."""
        return page == self.capped_page or page >= self.glitch_page


def load_json(path: str | Path) -> dict[str, Any]:
    """Read one JSON document, tolerating a UTF-8 BOM."""
    with Path(path).open("r", encoding="utf-8-sig") as f:
        return json.load(f)


def dump_json(path: str | Path, payload: dict[str, Any]) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")


def load_config(config_path: str | Path = DEFAULT_CONFIG_PATH) -> dict[str, Any]:
    """Load the project config file; a missing file is an empty config."""
    path = Path(config_path)
    if not path.exists():
        return {}
    return load_json(path)


def coerce_positive_int(
    value: Any,
    default: int,
    minimum: int = 1,
    maximum: int | None = None,
) -> int:
    """Coerce a value to a bounded positive integer."""
    floor = max(1, int(minimum))
    fallback = max(floor, int(default))
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = fallback

    if parsed < floor:
        parsed = floor
    if maximum is not None:
        parsed = min(parsed, int(maximum))
    return parsed


def coerce_delay(value: Any, default: float) -> float:
    """Coerce a delay in seconds; negative or garbage values fall back."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return default
    if parsed < 0:
        return default
    return parsed


def settings_from_mapping(section: Mapping[str, Any]) -> SearchSettings:
    defaults = SearchSettings()
    values: dict[str, Any] = {}
    for setting in fields(SearchSettings):
        current = getattr(defaults, setting.name)
        raw = section.get(setting.name, current)
        if isinstance(current, float):
            values[setting.name] = coerce_delay(raw, current)
        else:
            values[setting.name] = coerce_positive_int(raw, current)
    return SearchSettings(**values)
