"""Top-level random search orchestration for a host UI."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Union

from random_level.misc.config_loader import SearchSettings
from random_level.misc.errors import RandomSearchError, TransportFailure
from random_level.misc.filters import SearchFilters
from random_level.misc.logger import get_logger
from random_level.misc.models import (
    Aborted,
    AuthGate,
    FetchKind,
    FetchRequest,
    PageFetchClient,
    PageResult,
    Presenter,
    Selected,
    Step,
)
from random_level.misc.random_source import RandomSource
from random_level.search.chaos import ChaosProbe, ProcessState
from random_level.search.discovery import DiscoveryEngine

Driver = Union[DiscoveryEngine, ChaosProbe]


class SearchMode(str, Enum):
    CHAOS = "chaos"
    SMART = "smart"


@dataclass(slots=True)
class _Run:
    """One in-flight session. ``cancelled`` is the token late completions check."""

    mode: SearchMode
    driver: Driver
    filters: SearchFilters | None = None
    cancelled: bool = False
    task: asyncio.Task[None] | None = None


class SelectionController:
    """Runs at most one chaos or smart search at a time.

    ``start_chaos`` and ``start_smart`` must be called from inside a running
    event loop; the session then proceeds as a single background task that
    sleeps, fetches one page, and asks its driver for the next step. Call
    :meth:`cancel` when the owning screen goes away.
    """

    def __init__(
        self,
        client: PageFetchClient,
        presenter: Presenter,
        auth: AuthGate,
        state: ProcessState,
        settings: SearchSettings | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.client = client
        self.presenter = presenter
        self.auth = auth
        self.state = state
        self.settings = settings or SearchSettings()
        self.rng = rng or RandomSource()
        self.logger = get_logger("controller")
        self.last_mode: SearchMode | None = None
        self.last_error: RandomSearchError | None = None
        self._run: _Run | None = None

    @property
    def active(self) -> bool:
        return self._run is not None

    @property
    def driver(self) -> Driver | None:
        return self._run.driver if self._run else None

    def start_chaos(self) -> bool:
        """Start an unfiltered ID-probing search. Returns False when refused."""
        if not self._may_start():
            return False
        self.logger.info("mode=chaos")
        return self._launch(SearchMode.CHAOS, ChaosProbe(self.state, self.settings, self.rng))

    def start_smart(self, filters: SearchFilters) -> bool:
        """Start a filtered search, falling back to chaos when no filter is set."""
        if not self._may_start():
            return False
        if not filters.is_active():
            self.logger.info("mode=smart without filters, switching to chaos")
            return self._launch(SearchMode.CHAOS, ChaosProbe(self.state, self.settings, self.rng))
        self.logger.info("mode=smart")
        engine = DiscoveryEngine(filters, self.state.cache, self.settings, self.rng)
        return self._launch(SearchMode.SMART, engine, filters)

    def cancel(self) -> None:
        """Tear down the current session, if any. Safe to call repeatedly."""
        run = self._run
        if run is None:
            return
        self.logger.info("search cancelled mode=%s", run.mode.value)
        self._teardown(run)
        task = run.task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def wait(self) -> None:
        """Wait for the running session to finish or be cancelled."""
        run = self._run
        if run is None or run.task is None:
            return
        await asyncio.wait({run.task})

    def _may_start(self) -> bool:
        if not self.auth.is_authenticated():
            self.logger.debug("search refused: not authenticated")
            return False
        if self._run is not None:
            self.logger.debug("search refused: session already active mode=%s", self._run.mode.value)
            return False
        return True

    def _launch(self, mode: SearchMode, driver: Driver, filters: SearchFilters | None = None) -> bool:
        loop = asyncio.get_running_loop()
        run = _Run(mode=mode, driver=driver, filters=filters)
        self._run = run
        self.presenter.show_busy_indicator()
        run.task = loop.create_task(self._drive(run))
        return True

    async def _drive(self, run: _Run) -> None:
        try:
            step: Step = run.driver.start()
            while isinstance(step, FetchRequest):
                await asyncio.sleep(step.delay)
                if run.cancelled:
                    return
                failure: RandomSearchError | None = None
                result = PageResult()
                try:
                    result = await self._issue(run, step)
                except TransportFailure as exc:
                    failure = exc
                except Exception as exc:  # noqa: BLE001
                    self.logger.warning("fetch raised kind=%s error=%r", step.kind.value, exc)
                    failure = TransportFailure(str(exc) or exc.__class__.__name__)
                if run.cancelled:
                    return
                if failure is not None:
                    step = run.driver.on_failure(step, failure)
                else:
                    step = run.driver.on_success(step, result)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            self.logger.exception("search crashed mode=%s", run.mode.value)
            step = Aborted(RandomSearchError(f"Random search failed: {exc}"))
        self._finish(run, step)

    async def _issue(self, run: _Run, request: FetchRequest) -> PageResult:
        if request.kind is FetchKind.PAGE:
            if run.filters is None:
                raise RuntimeError("page fetch requested without filters")
            return await self.client.fetch_page(run.filters, request.page)
        if request.kind is FetchKind.BY_ID:
            return await self.client.fetch_by_id(request.level_id)
        return await self.client.fetch_recent()

    def _finish(self, run: _Run, step: Step) -> None:
        if run.cancelled or self._run is not run:
            return
        self._teardown(run)
        if isinstance(step, Selected):
            self.last_mode = run.mode
            self._log_choice(run, step)
            self.presenter.open_item_detail(step.item)
            return
        if isinstance(step, Aborted):
            self.last_error = step.error
            self.logger.error(
                "search aborted kind=%s reason=%s",
                step.error.kind,
                step.error.message,
                extra={"mode": run.mode.value},
            )
            self.presenter.show_abort_message(step.error.message)

    def _teardown(self, run: _Run) -> None:
        run.cancelled = True
        if self._run is run:
            self._run = None
        self.presenter.hide_busy_indicator()

    def _log_choice(self, run: _Run, selected: Selected) -> None:
        item = selected.item
        self.logger.info("=========================================")
        self.logger.info("chosen level name=%s id=%s mode=%s", item.name, item.level_id, run.mode.value)
        if run.mode is SearchMode.CHAOS:
            self.logger.info("max recent id=%s", self.state.max_observed_id)
        elif selected.page is not None and selected.slot is not None:
            self.logger.info("page=%s slot=%s", selected.page + 1, selected.slot + 1)
        self.logger.info("=========================================")
