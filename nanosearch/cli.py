"""Command-line entry point: run one search and print the results."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from loguru import logger

from nanosearch.config.loader import load_config
from nanosearch.config.schema import VALID_ENGINES
from nanosearch.engines.errors import AllEnginesFailed
from nanosearch.engines.models import DEFAULT_LIMIT, SearchRequest, SearchResult
from nanosearch.factory import build_coordinator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nanosearch",
        description="Search the web on several engines without API keys.",
    )
    parser.add_argument("query", nargs="+", help="search terms")
    parser.add_argument(
        "-e",
        "--engine",
        dest="engines",
        action="append",
        default=[],
        metavar="ENGINE",
        help=f"engine to query, repeatable ({', '.join(VALID_ENGINES)}); defaults to search.defaultEngine",
    )
    parser.add_argument("-n", "--limit", type=int, default=DEFAULT_LIMIT, help="results per engine")
    parser.add_argument("--config", default=None, help="path to config.json")
    parser.add_argument("--json", action="store_true", help="print results as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def format_results(results: Sequence[SearchResult]) -> str:
    lines: list[str] = []
    for i, item in enumerate(results, 1):
        lines.append(f"{i}. {item.title} [{item.engine}]")
        lines.append(f"   {item.url}")
        if item.description:
            lines.append(f"   {item.description}")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    request = SearchRequest(query=" ".join(args.query), limit=args.limit, engines=tuple(args.engines))

    coordinator = build_coordinator(config)
    try:
        results = await coordinator.search(request)
    except (AllEnginesFailed, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await coordinator.aclose()

    if args.json:
        print(json.dumps([item.to_dict() for item in results], ensure_ascii=False, indent=2))
    elif results:
        print(format_results(results))
    else:
        print("No results.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
