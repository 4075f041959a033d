#!/usr/bin/env python3
# backend/run_jobs.py
"""
Background job runner.

Drains queued payment captures, cancellation settlements and recording
webhook retries through SettlementService.run_due_jobs. Run it under a
process supervisor, or with --once from cron.
"""
import argparse
import logging
import os
from pathlib import Path
import signal
import sys
import threading

backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))
os.chdir(backend_dir)

from app.api.dependencies.services import get_payment_gateway  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.database import SessionLocal  # noqa: E402
from app.services.settlement_service import SettlementService  # noqa: E402

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("run_jobs")


def run_once() -> dict[str, int]:
    db = SessionLocal()
    try:
        service = SettlementService(db, get_payment_gateway())
        return service.run_due_jobs(limit=settings.jobs_batch)
    finally:
        db.close()


def run_forever(shutdown_event: threading.Event) -> None:
    poll_interval = settings.jobs_poll_interval
    while not shutdown_event.is_set():
        try:
            summary = run_once()
            if any(summary.values()):
                logger.info("Job pass finished: %s", summary)
        except Exception:
            logger.exception("Job pass crashed; retrying after the poll interval")
        shutdown_event.wait(poll_interval)


def main() -> None:
    parser = argparse.ArgumentParser(description="Drain due background jobs")
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    args = parser.parse_args()

    if args.once:
        logger.info("Job pass finished: %s", run_once())
        return

    shutdown_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: shutdown_event.set())
    signal.signal(signal.SIGINT, lambda *_: shutdown_event.set())
    logger.info("Job runner started (poll every %ss)", settings.jobs_poll_interval)
    run_forever(shutdown_event)
    logger.info("Job runner stopped")


if __name__ == "__main__":
    main()
