from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any, TextIO

from livequery.client import Client
from livequery.codec import encode_base64
from livequery.collection import Collection
from livequery.config.runtime import ClientSettings
from livequery.errors import RecordStoreError
from livequery.query import Query
from livequery.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="livequery", description="Live queries against a remote record store")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--base-url", help="Record store API root (default: LIVEQUERY_BASE_URL)")
    subparsers = parser.add_subparsers(dest="command")

    get_parser = subparsers.add_parser("get", help="Fetch a listing once and print it as JSON")
    _add_query_arguments(get_parser)

    watch_parser = subparsers.add_parser("watch", help="Poll a listing and print one JSON line per result")
    _add_query_arguments(watch_parser)
    watch_parser.add_argument(
        "--interval-ms",
        type=int,
        help="Delay between poll cycles (default: LIVEQUERY_POLL_INTERVAL_MS)",
    )
    watch_parser.add_argument(
        "--cycles",
        type=int,
        default=0,
        help="Stop after this many results or errors (default: run until interrupted)",
    )

    return parser


def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("collection", help="Collection id, e.g. ns/City")
    parser.add_argument(
        "--where",
        nargs=3,
        action="append",
        default=[],
        metavar=("FIELD", "OP", "VALUE"),
        help="Filter clause; repeatable. VALUE is parsed as JSON when possible.",
    )
    parser.add_argument("--sort", help="Field to sort by")
    parser.add_argument("--desc", action="store_true", help="Sort descending")
    parser.add_argument("--limit", type=int, help="Maximum number of records")


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def build_query(collection: Collection, args: argparse.Namespace) -> Collection | Query:
    query: Collection | Query = collection
    for field, op, value in args.where:
        query = query.where(field, op, _parse_value(value))
    if args.sort:
        query = query.sort(args.sort, "desc" if args.desc else "asc")
    if args.limit is not None:
        query = query.limit(args.limit)
    return query


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return encode_base64(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def _dump(payload: Any) -> str:
    if hasattr(payload, "model_dump"):
        payload = payload.model_dump()
    return json.dumps(payload, default=_json_default)


async def run_get(query: Collection | Query, out: TextIO) -> int:
    result = await query.get()
    print(_dump(result), file=out)
    return 0


async def run_watch(query: Collection | Query, cycles: int, out: TextIO, err: TextIO) -> int:
    done = asyncio.Event()
    seen = 0
    failures = 0

    def _count() -> None:
        nonlocal seen
        seen += 1
        if cycles and seen >= cycles:
            done.set()

    def on_data(result: Any) -> None:
        print(_dump(result), file=out, flush=True)
        _count()

    def on_error(error: Exception) -> None:
        nonlocal failures
        failures += 1
        print(json.dumps({"error": getattr(error, "reason", "unknown/error"), "message": str(error)}), file=err, flush=True)
        _count()

    unsubscribe = query.on_snapshot(on_data, on_error)
    try:
        await done.wait()
    finally:
        unsubscribe()
    return 1 if failures and failures == seen else 0


def main(argv: list[str] | None = None, out: TextIO | None = None, err: TextIO | None = None) -> int:
    out = out or sys.stdout
    err = err or sys.stderr
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in ("get", "watch"):
        parser.print_help()
        return 1

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        settings = ClientSettings.from_env()
        if args.base_url:
            settings = replace(settings, base_url=args.base_url.rstrip("/"))
        if args.command == "watch" and args.interval_ms is not None:
            settings = replace(settings, poll_interval_ms=args.interval_ms)
    except ValueError as exc:
        print(f"invalid configuration: {exc}", file=err)
        return 1

    client = Client(settings)
    try:
        query = build_query(client.collection(args.collection), args)
        if args.command == "get":
            return asyncio.run(run_get(query, out))
        return asyncio.run(run_watch(query, args.cycles, out, err))
    except RecordStoreError as exc:
        print(f"{args.command} failed: {exc}", file=err)
        return 1
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 0
    finally:
        client.close()


def entrypoint() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    entrypoint()
