"""Command line access to the retry queue.

Usage:
    python -m mindbox_relay.scripts.queue init-db
    python -m mindbox_relay.scripts.queue tick
    python -m mindbox_relay.scripts.queue worker [--interval SECONDS]
    python -m mindbox_relay.scripts.queue stats
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys

from mindbox_relay.core.logging import configure_logging
from mindbox_relay.core.settings import settings
from mindbox_relay.services.integration import init_integration, shutdown_integration
from mindbox_relay.services.worker import QueueWorker


def _init_db() -> int:
    from mindbox_relay.db.session import create_tables

    create_tables()
    print("[queue] tables created")
    return 0


def _tick() -> int:
    integration = init_integration(settings)
    try:
        print(integration.run_agent())
    finally:
        shutdown_integration()
    return 0


def _stats() -> int:
    integration = init_integration(settings)
    try:
        counts = integration.service.store.count_by_status()
    finally:
        shutdown_integration()
    print(json.dumps({status.name.lower(): total for status, total in counts.items()}))
    return 0


async def _worker(interval: float | None) -> int:
    integration = init_integration(settings)
    worker = QueueWorker(integration, interval)
    await worker.start()
    try:
        while worker.running:
            await asyncio.sleep(1.0)
    except asyncio.CancelledError:
        pass
    finally:
        await worker.stop()
        shutdown_integration()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect and drive the Mindbox retry queue")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create the queue table if it is missing.")
    subparsers.add_parser("tick", help="Process one batch of due rows and exit.")
    subparsers.add_parser("stats", help="Print row counts per status as JSON.")
    worker = subparsers.add_parser("worker", help="Run ticks until interrupted.")
    worker.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between ticks (defaults to the queue agent interval).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level)

    if args.command == "init-db":
        return _init_db()
    if args.command == "tick":
        return _tick()
    if args.command == "stats":
        return _stats()
    try:
        return asyncio.run(_worker(args.interval))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
