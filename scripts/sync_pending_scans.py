#!/usr/bin/env python3
"""Deliver queued receipt scans to the server.

Runs the sync reconciler once, or periodically with exponential backoff
after a run that left failed submissions behind.

Usage:
    # One pass
    python scripts/sync_pending_scans.py --once --user-id 1 --token "$TOKEN"

    # Keep running (hourly, backing off on failures)
    DEVICE_API_BASE_URL=https://receipts.example.com \
        python scripts/sync_pending_scans.py --user-id 1 --token "$TOKEN"
"""

import argparse
import logging
import os
import sys
import time

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.device.client import IngestionClient
from src.device.config import DeviceSettings, get_device_settings
from src.device.queue import LocalScanQueue
from src.device.reconciler import SyncReconciler, SyncResult
from src.device.session import StaticSession

logger = logging.getLogger("sync_pending_scans")


def next_delay(result: SyncResult, failures: int, settings: DeviceSettings) -> int:
    """Seconds to wait before the next run."""
    if result != SyncResult.RETRY:
        return settings.sync_interval_seconds
    backoff = settings.min_backoff_seconds * 2 ** (failures - 1)
    return min(backoff, settings.max_backoff_seconds)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--user-id", type=int, default=None, help="Signed-in user id")
    parser.add_argument(
        "--token",
        default=os.getenv("DEVICE_ACCESS_TOKEN"),
        help="Bearer token for the API (default: $DEVICE_ACCESS_TOKEN)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single sync pass and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_device_settings()
    queue = LocalScanQueue(settings.queue_database_url)
    session = StaticSession(user_id=args.user_id, token=args.token)

    with IngestionClient(settings) as client:
        reconciler = SyncReconciler(queue, client, session)
        failures = 0
        while True:
            report = reconciler.run()
            logger.info(
                f"Sync {report.result.value}: {len(report.submitted)} submitted, "
                f"{report.remaining} still queued"
            )
            if args.once:
                return 1 if report.result == SyncResult.RETRY else 0

            failures = failures + 1 if report.result == SyncResult.RETRY else 0
            delay = next_delay(report.result, failures, settings)
            logger.info(f"Next sync in {delay}s")
            try:
                time.sleep(delay)
            except KeyboardInterrupt:
                logger.info("Stopped")
                return 0


if __name__ == "__main__":
    sys.exit(main())
