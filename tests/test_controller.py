from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from random_level.misc.config_loader import SearchSettings
from random_level.misc.errors import TransportFailure
from random_level.misc.filters import SearchFilters, compute_fingerprint
from random_level.misc.models import LevelItem, PageResult
from random_level.misc.random_source import RandomSource
from random_level.others.boundary_cache import BoundaryCache, JsonCacheStore
from random_level.search.chaos import ProcessState
from random_level.search.controller import SearchMode, SelectionController

FAST = SearchSettings(resolve_delay=0.0, safe_delay=0.0, search_delay=0.0, retry_delay=0.0, chaos_delay=0.0)
FILTERS = SearchFilters(difficulty="5", epic=True)


class FakeLevelServer:
    """In-memory remote with ``total`` filtered levels and a block of valid IDs."""

    def __init__(
        self,
        total: int = 0,
        declared_total: int | None = None,
        newest_id: int = 0,
        id_hit_after: int = 0,
        page_errors: int = 0,
    ) -> None:
        self.total = total
        self.declared_total = declared_total
        self.newest_id = newest_id
        self.id_hit_after = id_hit_after
        self.page_errors = page_errors
        self.calls: list[tuple[str, int]] = []

    async def fetch_page(self, filters: SearchFilters, page_index: int) -> PageResult:
        self.calls.append(("page", page_index))
        if self.page_errors > 0:
            self.page_errors -= 1
            raise TransportFailure("connection reset")
        count = max(0, min(10, self.total - page_index * 10))
        items = [LevelItem(page_index * 10 + i + 1, f"lvl{page_index * 10 + i + 1}") for i in range(count)]
        return PageResult(items=items, declared_total=self.declared_total)

    async def fetch_by_id(self, level_id: int) -> PageResult:
        self.calls.append(("id", level_id))
        probes = sum(1 for kind, _ in self.calls if kind == "id")
        if probes > self.id_hit_after:
            return PageResult(items=[LevelItem(level_id, f"id{level_id}")])
        return PageResult()

    async def fetch_recent(self) -> PageResult:
        self.calls.append(("recent", 0))
        if not self.newest_id:
            return PageResult()
        return PageResult(items=[LevelItem(self.newest_id, "newest")])


class RecordingPresenter:
    def __init__(self) -> None:
        self.events: list[str] = []
        self.opened: list[LevelItem] = []
        self.messages: list[str] = []

    def show_busy_indicator(self) -> None:
        self.events.append("show")

    def hide_busy_indicator(self) -> None:
        self.events.append("hide")

    def show_abort_message(self, text: str) -> None:
        self.events.append("abort")
        self.messages.append(text)

    def open_item_detail(self, item: LevelItem) -> None:
        self.events.append("open")
        self.opened.append(item)


class Gate:
    def __init__(self, allowed: bool = True) -> None:
        self.allowed = allowed

    def is_authenticated(self) -> bool:
        return self.allowed


def _controller(server, state=None, allowed=True, seed=9):
    presenter = RecordingPresenter()
    state = state or ProcessState(cache=BoundaryCache())
    controller = SelectionController(server, presenter, Gate(allowed), state, FAST, RandomSource(seed=seed))
    return controller, presenter, state


def test_smart_search_with_trusted_total_opens_level(tmp_path: Path) -> None:
    state = ProcessState.create(JsonCacheStore(tmp_path / "cache.json"))
    server = FakeLevelServer(total=37, declared_total=37)
    controller, presenter, _ = _controller(server, state)

    async def scenario() -> None:
        assert controller.start_smart(FILTERS) is True
        assert controller.active is True
        await controller.wait()

    asyncio.run(scenario())

    assert presenter.events == ["show", "hide", "open"]
    assert 1 <= presenter.opened[0].level_id <= 37
    assert len(server.calls) == 2
    assert controller.last_mode is SearchMode.SMART
    assert controller.active is False
    reloaded = JsonCacheStore(tmp_path / "cache.json").load()
    assert reloaded.get(compute_fingerprint(FILTERS)) == 3


def test_smart_search_discovers_boundary_without_total() -> None:
    server = FakeLevelServer(total=734)
    controller, presenter, state = _controller(server)

    async def scenario() -> None:
        controller.start_smart(FILTERS)
        await controller.wait()

    asyncio.run(scenario())

    assert len(presenter.opened) == 1
    assert 1 <= presenter.opened[0].level_id <= 734
    assert state.cache.get(compute_fingerprint(FILTERS)) == 73
    assert ("page", 1000) in server.calls


def test_refuses_when_not_authenticated() -> None:
    server = FakeLevelServer(total=5)
    controller, presenter, _ = _controller(server, allowed=False)

    async def scenario() -> None:
        assert controller.start_smart(FILTERS) is False
        assert controller.start_chaos() is False

    asyncio.run(scenario())
    assert server.calls == []
    assert presenter.events == []


def test_rejects_second_search_while_active() -> None:
    server = FakeLevelServer(total=15, declared_total=15)
    controller, presenter, _ = _controller(server)

    async def scenario() -> None:
        assert controller.start_smart(FILTERS) is True
        assert controller.start_chaos() is False
        assert controller.start_smart(FILTERS) is False
        await controller.wait()
        assert controller.start_smart(FILTERS) is True
        await controller.wait()

    asyncio.run(scenario())
    assert presenter.events.count("open") == 2


def test_smart_without_filters_runs_chaos_and_reuses_max_id() -> None:
    server = FakeLevelServer(newest_id=5_000_000, id_hit_after=3)
    controller, presenter, state = _controller(server)

    async def scenario() -> None:
        assert controller.start_smart(SearchFilters()) is True
        await controller.wait()
        assert controller.start_chaos() is True
        await controller.wait()

    asyncio.run(scenario())

    assert state.max_observed_id == 5_000_000
    assert [kind for kind, _ in server.calls].count("recent") == 1
    assert all(128 <= value <= 5_000_000 for kind, value in server.calls if kind == "id")
    assert controller.last_mode is SearchMode.CHAOS
    assert len(presenter.opened) == 2


def test_empty_collection_shows_abort_message() -> None:
    server = FakeLevelServer(total=0)
    controller, presenter, state = _controller(server)

    async def scenario() -> None:
        controller.start_smart(FILTERS)
        await controller.wait()

    asyncio.run(scenario())

    assert presenter.events == ["show", "hide", "abort"]
    assert presenter.messages == ["No levels found."]
    assert controller.last_error.kind == "empty_collection"
    assert len(state.cache) == 0


def test_unexpected_client_errors_count_as_transport_failures() -> None:
    class Broken(FakeLevelServer):
        async def fetch_page(self, filters, page_index):  # noqa: ANN001, ARG002
            self.calls.append(("page", page_index))
            raise ValueError("garbled")

    server = Broken()
    controller, presenter, _ = _controller(server)

    async def scenario() -> None:
        controller.start_smart(FILTERS)
        await controller.wait()

    asyncio.run(scenario())

    assert len(server.calls) == 6
    assert presenter.messages == ["Connection failed or timed out."]


def test_transient_failures_below_cap_recover() -> None:
    server = FakeLevelServer(total=20, declared_total=20, page_errors=5)
    controller, presenter, _ = _controller(server)

    async def scenario() -> None:
        controller.start_smart(FILTERS)
        await controller.wait()

    asyncio.run(scenario())
    assert len(presenter.opened) == 1


def test_cancel_drops_in_flight_fetch() -> None:
    class Slow(FakeLevelServer):
        def __init__(self) -> None:
            super().__init__(total=50, declared_total=50)
            self.entered = asyncio.Event()
            self.release = asyncio.Event()

        async def fetch_page(self, filters, page_index):  # noqa: ANN001
            self.entered.set()
            await self.release.wait()
            return await super().fetch_page(filters, page_index)

    async def scenario() -> tuple[Slow, RecordingPresenter, SelectionController]:
        server = Slow()
        controller, presenter, _ = _controller(server)
        controller.start_smart(FILTERS)
        await server.entered.wait()
        controller.cancel()
        controller.cancel()
        server.release.set()
        await asyncio.sleep(0.01)
        return server, presenter, controller

    server, presenter, controller = asyncio.run(scenario())

    assert presenter.events == ["show", "hide"]
    assert presenter.opened == []
    assert controller.active is False
    assert server.calls == []


def test_cancel_when_idle_is_noop() -> None:
    controller, presenter, _ = _controller(FakeLevelServer())
    controller.cancel()
    assert presenter.events == []


def test_start_outside_event_loop_leaves_controller_idle() -> None:
    server = FakeLevelServer(total=15, declared_total=15)
    controller, presenter, _ = _controller(server)

    with pytest.raises(RuntimeError):
        controller.start_smart(FILTERS)

    assert controller.active is False
    assert controller.driver is None
    assert presenter.events == []

    async def scenario() -> None:
        assert controller.start_smart(FILTERS) is True
        await controller.wait()

    asyncio.run(scenario())
    assert presenter.events == ["show", "hide", "open"]


def test_cancel_during_retry_delay_stops_further_fetches() -> None:
    class Failing(FakeLevelServer):
        def __init__(self) -> None:
            super().__init__(total=50, page_errors=100)
            self.failed = asyncio.Event()

        async def fetch_page(self, filters, page_index):  # noqa: ANN001
            self.failed.set()
            return await super().fetch_page(filters, page_index)

    settings = SearchSettings(resolve_delay=0.0, safe_delay=0.0, search_delay=0.0, retry_delay=0.2, chaos_delay=0.0)

    async def scenario() -> tuple[Failing, RecordingPresenter, SelectionController, int]:
        server = Failing()
        presenter = RecordingPresenter()
        state = ProcessState(cache=BoundaryCache())
        controller = SelectionController(server, presenter, Gate(), state, settings, RandomSource(seed=3))
        controller.start_smart(FILTERS)
        await server.failed.wait()
        retries = controller.driver.session.retry_count
        controller.cancel()
        await asyncio.sleep(0.4)
        return server, presenter, controller, retries

    server, presenter, controller, retries = asyncio.run(scenario())

    assert retries == 1
    assert server.calls == [("page", 0)]
    assert presenter.events == ["show", "hide"]
    assert controller.active is False
    assert controller.last_error is None
