"""Parses the level-search response format of the remote level server.

A response looks like ``<levels>#<creators>#<songs>#<total>:<offset>:<amount>#<hash>``
where ``<levels>`` is a ``|``-separated list of ``key:value:key:value`` records.
The server answers ``-1`` when nothing matches.
"""

from __future__ import annotations

from random_level.misc.errors import TransportFailure
from random_level.misc.models import LevelItem, PageResult

KEY_LEVEL_ID = "1"
KEY_LEVEL_NAME = "2"


def parse_level_record(record: str) -> LevelItem | None:
    """Parse one ``key:value`` level record; returns None when it has no usable ID."""
    parts = record.split(":")
    fields = dict(zip(parts[::2], parts[1::2]))
    try:
        level_id = int(fields.get(KEY_LEVEL_ID, ""))
    except ValueError:
        return None
    if level_id <= 0:
        return None
    return LevelItem(level_id=level_id, name=fields.get(KEY_LEVEL_NAME, ""), raw=fields)


def parse_declared_total(segment: str) -> int | None:
    """Return the declared total from the ``total:offset:amount`` segment."""
    try:
        return int(segment.split(":")[0])
    except ValueError:
        return None


def parse_levels_response(text: str) -> PageResult:
    """Convert a raw response body into a PageResult.

    Raises TransportFailure for bodies that are neither ``-1`` nor the
    expected ``#``-segmented shape.
    """
    body = text.strip()
    if body in {"-1", ""}:
        return PageResult(items=[], declared_total=None)
    if body.startswith("-") and body.lstrip("-").isdigit():
        raise TransportFailure(f"server error code {body}")

    sections = body.split("#")
    items = [item for item in (parse_level_record(rec) for rec in sections[0].split("|") if rec) if item]
    if not items and sections[0]:
        raise TransportFailure("unparseable level list")

    total = parse_declared_total(sections[3]) if len(sections) > 3 else None
    return PageResult(items=items, declared_total=total)
