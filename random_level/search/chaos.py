"""Filterless random selection by probing random level IDs."""

from __future__ import annotations

from dataclasses import dataclass

from random_level.misc.config_loader import SearchSettings
from random_level.misc.errors import RandomSearchError
from random_level.misc.logger import get_logger
from random_level.misc.models import CacheStore, FetchKind, FetchRequest, PageResult, Selected, Step
from random_level.misc.random_source import RandomSource
from random_level.others.boundary_cache import DEFAULT_CACHE_KEY, BoundaryCache


@dataclass(slots=True)
class ProcessState:
    """State that outlives a single search but not the process.

    Build it once at startup with :meth:`create` and hand the same instance to
    every controller. ``max_observed_id`` starts at 0 (unknown) and is seeded
    by the first chaos session; :meth:`reset` forgets it again. The boundary
    cache is durable and is not touched by ``reset``.
    """

    cache: BoundaryCache
    max_observed_id: int = 0

    @classmethod
    def create(cls, store: CacheStore, key: str = DEFAULT_CACHE_KEY) -> ProcessState:
        return cls(cache=store.load(key))

    def reset(self) -> None:
        self.max_observed_id = 0


class ChaosProbe:
    """Guesses IDs in ``[chaos_min_id, max_observed_id]`` until one resolves.

    Failures never end the session; every miss or transport error schedules
    another probe after ``chaos_delay``.
    """

    def __init__(
        self,
        state: ProcessState,
        settings: SearchSettings | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.state = state
        self.settings = settings or SearchSettings()
        self.rng = rng or RandomSource()
        self.is_fetching_latest = False
        self.probes = 0
        self.logger = get_logger("chaos")

    def start(self) -> FetchRequest:
        self.is_fetching_latest = self.state.max_observed_id == 0
        return self._next(self.settings.start_delay)

    def draw_id(self) -> int:
        high = self.state.max_observed_id or self.settings.chaos_fallback_max_id
        return self.rng.randint(self.settings.chaos_min_id, max(high, self.settings.chaos_min_id))

    def on_success(self, request: FetchRequest, result: PageResult) -> Step:
        if request.kind is FetchKind.RECENT:
            self.is_fetching_latest = False
            newest = result.items[0].level_id if result.items else 0
            self.state.max_observed_id = newest if newest > 0 else self.settings.chaos_fallback_max_id
            self.logger.info("max observed id=%s", self.state.max_observed_id)
            return self._next(self.settings.chaos_delay)

        if result.items:
            slot = self.rng.randint(0, result.count_on_page - 1)
            self.logger.info("probe hit id=%s after probes=%s", request.level_id, self.probes)
            return Selected(item=result.items[slot])
        return self._next(self.settings.chaos_delay)

    def on_failure(self, request: FetchRequest, error: RandomSearchError) -> Step:
        self.logger.warning("chaos fetch failed kind=%s error=%s", request.kind.value, error)
        return self._next(self.settings.chaos_delay)

    def _next(self, delay: float) -> FetchRequest:
        if self.is_fetching_latest:
            return FetchRequest(kind=FetchKind.RECENT, delay=delay)
        self.probes += 1
        return FetchRequest(kind=FetchKind.BY_ID, delay=delay, level_id=self.draw_id())
