"""Command-line host that runs one random level search and prints the pick."""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any

from random_level.misc.config_loader import load_config, settings_from_mapping
from random_level.misc.filters import filters_from_mapping
from random_level.misc.http_client import HttpPageFetchClient
from random_level.misc.logger import get_logger, setup_logging
from random_level.misc.models import LevelItem
from random_level.others.boundary_cache import JsonCacheStore
from random_level.search.chaos import ProcessState
from random_level.search.controller import SelectionController


class ConsolePresenter:
    """Presenter that reports through logging and remembers the outcome."""

    def __init__(self) -> None:
        self.logger = get_logger("presenter")
        self.busy = False
        self.opened: LevelItem | None = None
        self.message: str | None = None

    def show_busy_indicator(self) -> None:
        self.busy = True

    def hide_busy_indicator(self) -> None:
        self.busy = False

    def show_abort_message(self, text: str) -> None:
        self.message = text
        self.logger.error("Random Search: %s", text)

    def open_item_detail(self, item: LevelItem) -> None:
        self.opened = item
        print(f"{item.level_id}\t{item.name}")


class AccountAuthGate:
    def __init__(self, account_id: int) -> None:
        self.account_id = account_id

    def is_authenticated(self) -> bool:
        return self.account_id > 0


def _filters_from_args(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "difficulty": args.difficulty,
        "length": args.length,
        "star": args.star,
        "no_star": args.no_star,
        "completed": args.completed,
        "uncompleted": args.uncompleted,
        "featured": args.featured,
        "epic": args.epic,
        "legendary": args.legendary,
        "mythic": args.mythic,
        "song_id": args.song_id,
        "custom_song": args.custom_song,
        "query": args.query,
    }


async def run_search(
    args: argparse.Namespace, config: dict[str, Any], client: Any = None
) -> ConsolePresenter:
    """Run a single search to completion and return the presenter holding the outcome."""
    settings = settings_from_mapping(config.get("search", {}))
    cache_path = Path(config.get("cache", {}).get("path", "data/random_cache.json"))
    state = ProcessState.create(JsonCacheStore(cache_path))
    presenter = ConsolePresenter()
    fetcher = client or HttpPageFetchClient(config)

    controller = SelectionController(fetcher, presenter, AccountAuthGate(args.account_id), state, settings)
    try:
        if args.mode == "chaos":
            started = controller.start_chaos()
        else:
            started = controller.start_smart(filters_from_mapping(_filters_from_args(args)))
        if not started:
            presenter.show_abort_message("Log in with an account to search.")
            return presenter
        await controller.wait()
    finally:
        controller.cancel()
        if client is None:
            await fetcher.aclose()
    return presenter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pick a uniformly random online level")
    parser.add_argument("--mode", default="smart", choices=["smart", "chaos"])
    parser.add_argument("--config", default="config/config.json")
    parser.add_argument("--account-id", type=int, default=0)
    parser.add_argument("--difficulty", default="-")
    parser.add_argument("--length", default="-")
    parser.add_argument("--song-id", type=int, default=0)
    parser.add_argument("--query", default="")
    for flag in (
        "star",
        "no-star",
        "completed",
        "uncompleted",
        "featured",
        "epic",
        "legendary",
        "mythic",
        "custom-song",
    ):
        parser.add_argument(f"--{flag}", action="store_true")
    return parser


def main() -> None:
    """Executes main logic."""
    args = build_parser().parse_args()
    config = load_config(args.config)
    setup_logging(
        level=str(config.get("logging", {}).get("level", "INFO")),
        json_logs=bool(config.get("logging", {}).get("json_logs", False)),
    )
    presenter = asyncio.run(run_search(args, config))
    if presenter.opened is None:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
