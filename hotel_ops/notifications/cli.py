"""Notification dispatch worker entrypoint.

Runs one dispatch cycle with ``--once`` or keeps running cycles, pausing
``--interval`` seconds between them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Sequence

import httpx

from hotel_ops.core.config import Settings, get_settings
from hotel_ops.core.logging import configure_logging, init_tracer, shutdown_tracer
from hotel_ops.services.postgres import create_pool

from .models import DispatchSummary
from .repository import NotificationRepository
from .worker import DispatchWorker

logger = logging.getLogger(__name__)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hotel notification dispatch worker")
    parser.add_argument("--once", action="store_true", help="Run a single dispatch cycle then exit")
    parser.add_argument("--interval", type=float, default=10.0, help="Seconds to wait between cycles (loop mode)")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=settings.dispatch_batch_size,
        help="Max jobs claimed per batch",
    )
    parser.add_argument(
        "--max-runtime-ms",
        type=int,
        default=settings.dispatch_max_runtime_ms,
        help="Time budget of one cycle in milliseconds",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=settings.dispatch_inter_batch_delay_ms,
        help="Pause between batches in milliseconds",
    )
    return parser


async def _run_cycle(worker: DispatchWorker, args: argparse.Namespace) -> DispatchSummary:
    return await worker.run_cycle(
        max_runtime_ms=args.max_runtime_ms,
        batch_size=args.batch_size,
        inter_batch_delay_ms=args.delay_ms,
    )


async def run(args: argparse.Namespace, settings: Settings) -> int:
    pool = await create_pool(settings)
    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
            worker = DispatchWorker.from_settings(NotificationRepository(pool), client, settings)
            if args.once:
                summary = await _run_cycle(worker, args)
                print(json.dumps(summary.as_dict(), default=str))
                return 0 if summary.success else 1

            while True:
                try:
                    await _run_cycle(worker, args)
                except Exception:
                    # Keep running even if a cycle fails
                    logger.exception("Dispatch cycle failed")
                await asyncio.sleep(args.interval)
    finally:
        await pool.close()


def main(argv: Sequence[str] | None = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    configure_logging(settings)
    tracer_provider = init_tracer(settings)
    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Dispatch worker stopped")
        return 0
    finally:
        shutdown_tracer(tracer_provider)


if __name__ == "__main__":
    raise SystemExit(main())
