from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import httpx

from random_level.misc.errors import TransportFailure
from random_level.misc.filters import ANY, SearchFilters
from random_level.misc.logger import get_logger
from random_level.misc.models import PageResult
from random_level.parsers.level_parser import parse_levels_response

SEARCH_TYPE_QUERY = 0
SEARCH_TYPE_RECENT = 4


@dataclass(slots=True)
class FetchResult:
    ok: bool
    status_code: int | None
    text: str
    elapsed_ms: int
    error: str | None = None


def build_search_form(filters: SearchFilters, page: int) -> dict[str, Any]:
    """Translate filters into the level-search form fields."""
    form: dict[str, Any] = {
        "type": SEARCH_TYPE_QUERY,
        "str": filters.query,
        "page": page,
        "diff": filters.difficulty or ANY,
        "len": filters.length or ANY,
    }
    flags = {
        "star": filters.star,
        "noStar": filters.no_star,
        "featured": filters.featured,
        "epic": filters.epic,
        "legendary": filters.legendary,
        "mythic": filters.mythic,
        "uncompleted": filters.uncompleted,
        "onlyCompleted": filters.completed,
    }
    form.update({name: 1 for name, enabled in flags.items() if enabled})
    if filters.song_filter_active:
        form["song"] = filters.song_id
        if filters.custom_song:
            form["customSong"] = 1
    return form


class HttpPageFetchClient:
    """Async PageFetchClient posting to the level-search endpoint with httpx.

    Retrying is left to the search state machine, so each call is one attempt.
    """

    def __init__(self, config: dict[str, Any], client: httpx.AsyncClient | None = None) -> None:
        http_cfg = config.get("http", {})
        self.url = str(http_cfg.get("url", "https://www.boomlings.com/database/getGJLevels21.php"))
        self.secret = str(http_cfg.get("secret", "Wmfd2893gb7"))
        self.timeout = float(http_cfg.get("timeout_seconds", 15))
        self.user_agent = str(http_cfg.get("user_agent", ""))
        self.logger = get_logger("http_client")
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> HttpPageFetchClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            )
            self._owns_client = True
        return self._client

    async def _post(self, form: dict[str, Any]) -> FetchResult:
        start = time.perf_counter()
        payload = {key: str(value) for key, value in form.items()}
        payload["secret"] = self.secret
        try:
            response = await self._http().post(self.url, data=payload)
        except Exception as exc:  # noqa: BLE001
            elapsed = int((time.perf_counter() - start) * 1000)
            return FetchResult(ok=False, status_code=None, text="", elapsed_ms=elapsed, error=str(exc))
        elapsed = int((time.perf_counter() - start) * 1000)
        ok = response.status_code < 400
        return FetchResult(
            ok=ok,
            status_code=response.status_code,
            text=response.text,
            elapsed_ms=elapsed,
            error=None if ok else f"status={response.status_code}",
        )

    async def _query(self, form: dict[str, Any]) -> PageResult:
        result = await self._post(form)
        self.logger.info(
            "fetch type=%s page=%s status=%s elapsed_ms=%s",
            form.get("type"),
            form.get("page"),
            result.status_code,
            result.elapsed_ms,
        )
        if not result.ok:
            raise TransportFailure(result.error or "fetch-failed")
        return parse_levels_response(result.text)

    async def fetch_page(self, filters: SearchFilters, page_index: int) -> PageResult:
        return await self._query(build_search_form(filters, page_index))

    async def fetch_by_id(self, level_id: int) -> PageResult:
        return await self._query({"type": SEARCH_TYPE_QUERY, "str": level_id, "page": 0})

    async def fetch_recent(self) -> PageResult:
        return await self._query({"type": SEARCH_TYPE_RECENT, "str": "", "page": 0})
