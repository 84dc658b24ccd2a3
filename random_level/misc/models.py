"""Data shapes exchanged between the search core and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, Union

from random_level.misc.errors import RandomSearchError
from random_level.misc.filters import SearchFilters


@dataclass(slots=True, frozen=True)
class LevelItem:
    level_id: int
    name: str = ""
    raw: dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(slots=True)
class PageResult:
    """One page of a remote query. ``declared_total`` is a hint and may lie."""

    items: list[LevelItem] = field(default_factory=list)
    declared_total: int | None = None

    @property
    def count_on_page(self) -> int:
        return len(self.items)


class FetchKind(str, Enum):
    PAGE = "page"
    BY_ID = "by_id"
    RECENT = "recent"


@dataclass(slots=True, frozen=True)
class FetchRequest:
    """A single scheduled fetch: wait ``delay`` seconds, then query."""

    kind: FetchKind
    delay: float = 0.0
    page: int = 0
    level_id: int = 0


@dataclass(slots=True, frozen=True)
class Selected:
    item: LevelItem
    page: int | None = None
    slot: int | None = None


@dataclass(slots=True, frozen=True)
class Aborted:
    error: RandomSearchError


Step = Union[FetchRequest, Selected, Aborted]


class PageFetchClient(Protocol):
    async def fetch_page(self, filters: SearchFilters, page_index: int) -> PageResult: ...

    async def fetch_by_id(self, level_id: int) -> PageResult: ...

    async def fetch_recent(self) -> PageResult: ...


class Presenter(Protocol):
    def show_busy_indicator(self) -> None: ...

    def hide_busy_indicator(self) -> None: ...

    def show_abort_message(self, text: str) -> None: ...

    def open_item_detail(self, item: LevelItem) -> None: ...


class AuthGate(Protocol):
    def is_authenticated(self) -> bool: ...


class CacheStore(Protocol):
    def load(self, key: str) -> Any: ...

    def save(self, key: str, cache: Any) -> None: ...
