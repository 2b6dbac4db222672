"""Command line entry point printing one page of the feed as JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Sequence

from pydantic import ValidationError

from .aggregator import FeedAggregator
from .config import DEFAULT_PAGE_LIMIT, SortKey
from .logging_utils import setup_stdout_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="solfeed",
        description="Fetch the aggregated Solana token feed and print it as JSON.",
    )
    parser.add_argument(
        "--sort",
        default=SortKey.TRENDING.value,
        choices=[key.value for key in SortKey],
        help="ranking order (default: %(default)s)",
    )
    parser.add_argument("--page", type=int, default=1, help="1-based page number")
    parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_PAGE_LIMIT,
        help="tokens per page (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="overall deadline in seconds for the upstream fan-out",
    )
    parser.add_argument("--health", action="store_true", help="include per-source health")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (0 for compact)")
    parser.add_argument("--json-logs", action="store_true", help="emit logs as JSON lines")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


async def _run(args: argparse.Namespace) -> dict:
    async with FeedAggregator() as aggregator:
        result = await aggregator.fetch_feed(
            page=args.page,
            limit=args.limit,
            sort=args.sort,
            timeout=args.timeout,
        )
        payload = result.to_dict()
        if args.health:
            payload["health"] = {
                name: health.to_dict() for name, health in aggregator.source_health().items()
            }
    return payload


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(list(argv) if argv is not None else None)
    setup_stdout_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_format=args.json_logs,
    )
    try:
        payload = asyncio.run(_run(args))
    except ValidationError as exc:
        logger.error("Invalid feed arguments: %s", exc)
        return 2
    except KeyboardInterrupt:
        return 130

    indent = args.indent if args.indent > 0 else None
    json.dump(payload, sys.stdout, indent=indent, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
