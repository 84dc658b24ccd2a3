"""Search filter criteria and the cache fingerprint derived from them."""

from __future__ import annotations

from dataclasses import dataclass

ANY = "-"


@dataclass(slots=True, frozen=True)
class SearchFilters:
    """Every criterion that narrows the remote level search."""

    difficulty: str = ANY
    length: str = ANY
    star: bool = False
    no_star: bool = False
    completed: bool = False
    uncompleted: bool = False
    featured: bool = False
    epic: bool = False
    legendary: bool = False
    mythic: bool = False
    song_id: int = 0
    custom_song: bool = False
    query: str = ""

    @property
    def song_filter_active(self) -> bool:
        # Song ID 1 is the default in-game track and does not narrow results.
        return self.custom_song or self.song_id > 1

    def is_active(self) -> bool:
        """Return True when any criterion narrows the result set."""
        return (
            self.star
            or self.no_star
            or self.difficulty != ANY
            or self.length != ANY
            or self.completed
            or self.uncompleted
            or self.featured
            or self.epic
            or self.legendary
            or self.mythic
            or self.song_filter_active
            or bool(self.query)
        )


def _flag(value: bool) -> int:
    return 1 if value else 0


def compute_fingerprint(filters: SearchFilters) -> str:
    """Build the stable cache key for a filter set.

    Field order is fixed so that identical filters always yield the same key
    across runs. The query is appended only when non-empty.
    """
    parts = [
        f"Diff:{filters.difficulty}",
        f"Len:{filters.length}",
        f"Star:{_flag(filters.star)}",
        f"NoStar:{_flag(filters.no_star)}",
        f"Done:{_flag(filters.completed)}",
        f"Undone:{_flag(filters.uncompleted)}",
        f"Feat:{_flag(filters.featured)}",
        f"Epic:{_flag(filters.epic)}",
        f"Leg:{_flag(filters.legendary)}",
        f"Myth:{_flag(filters.mythic)}",
        f"Song:{filters.song_id}",
        f"Custom:{_flag(filters.custom_song)}",
    ]
    if filters.query:
        parts.append(f"Q:{filters.query}")
    return "_".join(parts)


def filters_from_mapping(payload: dict) -> SearchFilters:
    """Build filters from a loose mapping (CLI args or config), ignoring unknown keys."""
    known = set(SearchFilters.__dataclass_fields__)
    values = {key: value for key, value in payload.items() if key in known and value is not None}
    if "song_id" in values:
        values["song_id"] = int(values["song_id"])
    if "difficulty" in values:
        values["difficulty"] = str(values["difficulty"]) or ANY
    if "length" in values:
        values["length"] = str(values["length"]) or ANY
    return SearchFilters(**values)
