from __future__ import annotations

import argparse
import asyncio

from random_level.misc.config_loader import load_config
from random_level.misc.filters import filters_from_mapping
from random_level.misc.http_client import HttpPageFetchClient


async def _probe(args: argparse.Namespace) -> None:
    filters = filters_from_mapping({"difficulty": args.difficulty, "length": args.length, "query": args.query})
    async with HttpPageFetchClient(load_config("config/config.json")) as client:
        if args.level_id:
            result = await client.fetch_by_id(args.level_id)
        else:
            result = await client.fetch_page(filters, args.page)
    print("count=", result.count_on_page, "declared_total=", result.declared_total)
    for item in result.items:
        print(item.level_id, item.name)


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--page", type=int, default=0, help="page index to probe")
    parser.add_argument("--level-id", type=int, default=0)
    parser.add_argument("--difficulty", default="-")
    parser.add_argument("--length", default="-")
    parser.add_argument("--query", default="")
    asyncio.run(_probe(parser.parse_args()))


if __name__ == "__main__":
    main()
