#!/usr/bin/env python3
"""Run a single SaGe query headlessly and print its results and statistics."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from sage_console.config import settings
from sage_console.connectors.http_transport import HttpxTransport
from sage_console.core.errors import QueryValidationError
from sage_console.core.execution_controller import ExecutionSessionController
from sage_console.models.session import TERMINAL_STATES, SessionState

logger = logging.getLogger(__name__)


def _load_query(args: argparse.Namespace) -> str | None:
    if args.query_file:
        return Path(args.query_file).read_text(encoding="utf-8")
    return args.query


async def _run_query(args: argparse.Namespace) -> int:
    transport = HttpxTransport(
        timeout=settings.HTTP_TIMEOUT_SECONDS,
        max_connections=settings.HTTP_MAX_CONNECTIONS,
    )
    transport.initialize()
    controller = ExecutionSessionController(transport.post, bucket_size=args.bucket_size)
    finished = asyncio.Event()
    printed = 0

    def _on_redraw() -> None:
        nonlocal printed
        for row in controller.results_since(printed):
            print(json.dumps(row), flush=True)
            printed += 1
        if controller.state in TERMINAL_STATES:
            finished.set()

    controller.add_listener(_on_redraw)

    try:
        try:
            controller.start(_load_query(args), args.endpoint)
        except QueryValidationError as e:
            logger.error(str(e))
            return 2

        if args.max_seconds:
            asyncio.get_running_loop().call_later(args.max_seconds, controller.stop)
        if controller.state not in TERMINAL_STATES:
            await finished.wait()
    finally:
        controller.close()
        await transport.close()

    snapshot = controller.snapshot()
    stats = snapshot.stats
    print(
        f"[sage] {snapshot.state.value}: {snapshot.result_count} results in "
        f"{stats.elapsed_seconds:.2f}s, {stats.call_count} HTTP calls, "
        f"avg {stats.avg_server_latency_ms:.1f}ms/call",
        file=sys.stderr,
    )
    if snapshot.last_error is not None:
        print(
            f"[sage] error: {snapshot.last_error.error_type}: {snapshot.last_error.error_message}",
            file=sys.stderr,
        )
    return 0 if snapshot.state in {SessionState.COMPLETED, SessionState.STOPPED} else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a SaGe SPARQL query and stream its results as JSON lines."
    )
    parser.add_argument("--query", default=settings.DEFAULT_QUERY, help="SPARQL query text.")
    parser.add_argument("--query-file", help="Read the SPARQL query from a file.")
    parser.add_argument(
        "--endpoint",
        default=settings.DEFAULT_ENDPOINT,
        help="SaGe dataset URL to query.",
    )
    parser.add_argument(
        "--bucket-size",
        type=int,
        default=None,
        help="Results buffered per flush (defaults to RESULT_BUCKET_SIZE).",
    )
    parser.add_argument(
        "--max-seconds",
        type=float,
        default=None,
        help="Stop the query after this many seconds.",
    )
    return parser


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL), format=settings.LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    try:
        return asyncio.run(_run_query(args))
    except KeyboardInterrupt:
        print("[sage] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
