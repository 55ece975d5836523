#!/usr/bin/env python3
"""Run the pending-notification poller as a standalone process.

Usage:
    # Poll every 5 minutes against the configured database:
    HERALD_DB_DATABASE_URL=postgresql+asyncpg://herald@localhost/herald \\
        python3 scripts/run_poller.py

    # Single pass, e.g. from cron:
    python3 scripts/run_poller.py --once

Several pollers may run at once; every dispatch starts with an atomic
claim, so a notification is delivered by at most one of them. Adapters are
registered from the HERALD_SMTP_*, HERALD_SMS_* and HERALD_PUSH_*
environment variables.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from herald.contexts import default_context_registry
from herald.core.config import Settings
from herald.notifications.engine import NotificationEngine
from herald.notifications.renderer import JinjaTemplateRenderer
from herald.notifications.scheduler import PendingNotificationPoller
from herald.web.app import build_adapter_registry, build_backend

logger = logging.getLogger("herald.poller")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    backend, db = build_backend(settings)
    if db is None:
        logger.warning("No database configured; polling an empty in-memory store")
    elif db.is_sqlite:
        await db.create_all()

    engine = NotificationEngine(
        backend=backend,
        adapters=build_adapter_registry(settings),
        contexts=default_context_registry(settings.notification.contact_email).freeze(),
        renderer=JinjaTemplateRenderer(settings.notification.templates_dir),
        send_on_create=False,
        dispatch_timeout=settings.notification.dispatch_timeout_seconds,
    )
    poller = PendingNotificationPoller(
        engine,
        interval=args.interval,
        max_concurrency=args.max_concurrency,
    )

    try:
        if args.once:
            batch = await poller.run_once()
            print(
                f"sent={batch.sent} failed={batch.failed} "
                f"skipped={batch.skipped} errors={len(batch.errors)}"
            )
            return 1 if batch.errors else 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, poller.stop)
        await poller.run_forever()
        return 0
    finally:
        if db is not None:
            await db.close()


def main() -> None:
    settings = Settings()
    parser = argparse.ArgumentParser(description="Dispatch due Herald notifications")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.scheduler.poll_interval_seconds,
        help="Seconds between poll runs (default: %(default)s)",
    )
    parser.add_argument(
        "--max-concurrency",
        type=int,
        default=settings.scheduler.max_concurrency,
        help="Simultaneous dispatch attempts per run (default: %(default)s)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
