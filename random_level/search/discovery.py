"""Phased boundary discovery over a filtered, remotely paginated level list.

The remote side only answers "give me page N" and offers a total-count hint
that cannot always be trusted. Pages at or past the glitch boundary answer
unreliably, so reaching them with results is treated as an unbounded list
and capped. The engine is a plain state machine: every ``on_success`` or
``on_failure`` call mutates the session and returns exactly one next step,
either another fetch, a selection or an abort. Scheduling and I/O belong to
the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from random_level.misc.config_loader import SearchSettings
from random_level.misc.errors import (
    EmptyCollection,
    ExhaustedRetries,
    InvalidSelection,
    RandomSearchError,
    StaleCache,
)
from random_level.misc.filters import SearchFilters, compute_fingerprint
from random_level.misc.logger import get_logger
from random_level.misc.models import Aborted, FetchKind, FetchRequest, PageResult, Selected, Step
from random_level.misc.random_source import RandomSource
from random_level.others.boundary_cache import BoundaryCache


class Phase(str, Enum):
    CHECK_TOTAL = "check_total"
    CACHE_PEEK = "cache_peek"
    CACHE_NEXT = "cache_next"
    GLITCH_CHECK = "glitch_check"
    BINARY_SEARCH = "binary_search"
    CALC_EXACT = "calc_exact"
    FETCH_TARGET = "fetch_target"
    DONE = "done"
    ABORTED = "aborted"


TERMINAL_PHASES = frozenset({Phase.DONE, Phase.ABORTED})


@dataclass(slots=True)
class DiscoverySession:
    """Mutable state of one discovery attempt. Never persisted."""

    fingerprint: str
    filters: SearchFilters
    using_filters: bool = True
    phase: Phase = Phase.CHECK_TOTAL
    search_low: int = 0
    search_high: int = 0
    found_max_page: int = 0
    target_page: int = 0
    target_slot: int = 0
    retry_count: int = 0
    calc_exact_steps: int = 0
    stale_restarts: int = 0


def bounds_from_total(total: int, page_size: int = 10) -> tuple[int, int]:
    """Map a trusted item total to (last page index, items on that page)."""
    if total < 1:
        raise ValueError(f"total must be >= 1, got {total}")
    return (total - 1) // page_size, (total - 1) % page_size + 1


def pick_target(
    max_page: int, count_on_max_page: int, rng: RandomSource, page_size: int = 10
) -> tuple[int, int]:
    """Draw a uniform global index over the discovered range as (page, slot)."""
    total = max_page * page_size + count_on_max_page
    if total < 1:
        raise ValueError(f"empty range max_page={max_page} count={count_on_max_page}")
    global_index = rng.randint(0, total - 1)
    return divmod(global_index, page_size)


class DiscoveryEngine:
    """Finds the last non-empty page for a filter set, then picks one level."""

    def __init__(
        self,
        filters: SearchFilters,
        cache: BoundaryCache,
        settings: SearchSettings | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.settings = settings or SearchSettings()
        self.cache = cache
        self.rng = rng or RandomSource()
        self.session = DiscoverySession(
            fingerprint=compute_fingerprint(filters),
            filters=filters,
            using_filters=filters.is_active(),
        )
        self.logger = get_logger("discovery")
        self.error: RandomSearchError | None = None

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def finished(self) -> bool:
        return self.session.phase in TERMINAL_PHASES

    def start(self) -> Step:
        """Pick the entry phase from the cache and return the first fetch."""
        session = self.session
        cached = self.cache.get(session.fingerprint)
        if cached is None:
            self.logger.info("cache miss fingerprint=%s, starting fresh discovery", session.fingerprint)
            session.phase = Phase.CHECK_TOTAL
        elif self.settings.is_unbounded_marker(cached):
            self.logger.info("cached page=%s is the unbounded marker, re-checking glitch page", cached)
            session.phase = Phase.GLITCH_CHECK
        else:
            self.logger.info("cache hit page=%s, peeking", cached)
            session.found_max_page = cached
            session.phase = Phase.CACHE_PEEK
        return self._fetch(self.settings.start_delay)

    def page_for_phase(self) -> int:
        session = self.session
        phase = session.phase
        if phase is Phase.CHECK_TOTAL:
            return 0
        if phase in (Phase.CACHE_PEEK, Phase.CALC_EXACT):
            return session.found_max_page
        if phase is Phase.CACHE_NEXT:
            return session.found_max_page + 1
        if phase is Phase.GLITCH_CHECK:
            return self.settings.glitch_page
        if phase is Phase.BINARY_SEARCH:
            return session.search_low + (session.search_high - session.search_low) // 2
        if phase is Phase.FETCH_TARGET:
            return session.target_page
        raise RuntimeError(f"no page to fetch in phase {phase.value}")

    def on_success(self, request: FetchRequest, result: PageResult) -> Step:
        """Advance on a completed fetch; an empty page is a success with count 0."""
        self._ensure_running()
        handler = {
            Phase.CHECK_TOTAL: self._after_check_total,
            Phase.CACHE_PEEK: self._after_cache_peek,
            Phase.CACHE_NEXT: self._after_cache_next,
            Phase.GLITCH_CHECK: self._after_glitch_check,
            Phase.BINARY_SEARCH: self._after_binary_search,
            Phase.CALC_EXACT: self._after_calc_exact,
            Phase.FETCH_TARGET: self._after_fetch_target,
        }[self.session.phase]
        self.logger.debug(
            "phase=%s page=%s count=%s total=%s",
            self.session.phase.value,
            request.page,
            result.count_on_page,
            result.declared_total,
        )
        return handler(request.page, result)

    def on_failure(self, request: FetchRequest, error: RandomSearchError) -> Step:
        """Recover from a transport failure according to the current phase."""
        self._ensure_running()
        session = self.session
        phase = session.phase
        self.logger.warning("fetch failed phase=%s page=%s error=%s", phase.value, request.page, error)

        if phase is Phase.CACHE_PEEK:
            return self._bracket(0, session.found_max_page)
        if phase is Phase.CACHE_NEXT:
            # Treat the cached page as the real end.
            return self._resolve_target(session.found_max_page, self.settings.page_size)
        if phase is Phase.GLITCH_CHECK:
            return self._bracket(0, self.settings.glitch_page)
        if phase is Phase.BINARY_SEARCH:
            session.search_high = request.page
            return self._narrow()

        session.retry_count += 1
        if session.retry_count > self.settings.max_retries:
            return self._abort(ExhaustedRetries("Connection failed or timed out."))
        self.logger.info("retrying phase=%s attempt=%s", phase.value, session.retry_count)
        return self._fetch(self.settings.retry_delay)

    def _after_check_total(self, page: int, result: PageResult) -> Step:
        if result.count_on_page == 0:
            return self._abort(EmptyCollection("No levels found."))
        total = result.declared_total
        if total is not None and 0 < total < self.settings.untrusted_total:
            self.logger.info("trusted total=%s", total)
            return self._resolve_target(*bounds_from_total(total, self.settings.page_size))
        self.session.phase = Phase.GLITCH_CHECK
        return self._fetch(self.settings.safe_delay)

    def _after_cache_peek(self, page: int, result: PageResult) -> Step:
        count = result.count_on_page
        session = self.session
        if 0 < count < self.settings.page_size:
            self.logger.info("cached page=%s not full, boundary confirmed", page)
            return self._resolve_target(session.found_max_page, count)
        if count >= self.settings.page_size:
            session.phase = Phase.CACHE_NEXT
            return self._fetch(self.settings.safe_delay)
        self.logger.info("cached page=%s empty, searching backwards", page)
        return self._bracket(0, session.found_max_page)

    def _after_cache_next(self, page: int, result: PageResult) -> Step:
        count = result.count_on_page
        session = self.session
        settings = self.settings
        if count == 0:
            return self._resolve_target(session.found_max_page, settings.page_size)
        if count < settings.page_size:
            self.logger.info("list grew to page=%s count=%s", session.found_max_page + 1, count)
            return self._resolve_target(session.found_max_page + 1, count)
        if page >= settings.glitch_page:
            return self._resolve_capped()
        self.logger.info("next page full, widening search to page=%s", settings.glitch_page)
        return self._bracket(session.found_max_page + 1, settings.glitch_page)

    def _after_glitch_check(self, page: int, result: PageResult) -> Step:
        if result.count_on_page > 0:
            self.logger.info("glitch page=%s has levels, capping", page)
            return self._resolve_capped()
        return self._bracket(0, self.settings.glitch_page)

    def _after_binary_search(self, page: int, result: PageResult) -> Step:
        session = self.session
        if result.count_on_page > 0:
            if page >= self.settings.glitch_page:
                return self._resolve_capped()
            session.search_low = page
        else:
            session.search_high = page
        return self._narrow()

    def _after_calc_exact(self, page: int, result: PageResult) -> Step:
        session = self.session
        count = result.count_on_page
        if count > 0:
            return self._resolve_target(session.found_max_page, count)
        if session.found_max_page > 0 and session.calc_exact_steps < self.settings.calc_exact_max_steps:
            # The bracket overshot by a page, most likely a concurrent removal.
            session.found_max_page -= 1
            session.calc_exact_steps += 1
            return self._fetch(self.settings.safe_delay)
        return self._abort(EmptyCollection("Final page empty."))

    def _after_fetch_target(self, page: int, result: PageResult) -> Step:
        session = self.session
        count = result.count_on_page
        if count == 0:
            stale = StaleCache(f"target page {page} came back empty")
            self.logger.info("%s, invalidating fingerprint=%s", stale.message, session.fingerprint)
            self.cache.invalidate(session.fingerprint)
            session.stale_restarts += 1
            if session.stale_restarts > self.settings.max_retries:
                return self._abort(ExhaustedRetries("Level list keeps changing, try again later."))
            session.phase = Phase.CHECK_TOTAL
            return self._fetch(self.settings.safe_delay)

        slot = min(session.target_slot, count - 1)
        if slot < 0:
            return self._abort(InvalidSelection("Invalid slot index."))
        session.phase = Phase.DONE
        return Selected(item=result.items[slot], page=session.target_page, slot=slot)

    def _bracket(self, low: int, high: int) -> FetchRequest:
        session = self.session
        session.search_low = low
        session.search_high = high
        session.phase = Phase.BINARY_SEARCH
        return self._fetch(self.settings.search_delay)

    def _narrow(self) -> FetchRequest:
        session = self.session
        if session.search_high - session.search_low <= 1:
            session.found_max_page = session.search_low
            session.phase = Phase.CALC_EXACT
        return self._fetch(self.settings.search_delay)

    def _resolve_capped(self) -> FetchRequest:
        return self._resolve_target(self.settings.capped_page, self.settings.capped_count)

    def _resolve_target(self, max_page: int, count_on_max_page: int) -> FetchRequest:
        session = self.session
        if session.using_filters:
            self.cache.set(session.fingerprint, max_page)
        session.target_page, session.target_slot = pick_target(
            max_page, count_on_max_page, self.rng, self.settings.page_size
        )
        self.logger.info(
            "boundary max_page=%s count=%s -> target page=%s slot=%s",
            max_page,
            count_on_max_page,
            session.target_page,
            session.target_slot,
        )
        session.phase = Phase.FETCH_TARGET
        return self._fetch(self.settings.resolve_delay)

    def _abort(self, error: RandomSearchError) -> Aborted:
        self.session.phase = Phase.ABORTED
        self.error = error
        return Aborted(error)

    def _fetch(self, delay: float) -> FetchRequest:
        page = self.page_for_phase()
        self.logger.debug(
            "phase=%s scheduling page=%s delay=%s",
            self.session.phase.value,
            page,
            delay,
            extra={"phase": self.session.phase.value, "page": page, "fingerprint": self.session.fingerprint},
        )
        return FetchRequest(kind=FetchKind.PAGE, delay=delay, page=page)

    def _ensure_running(self) -> None:
        if self.finished:
            raise RuntimeError(f"discovery already {self.session.phase.value}")
