"""
Scheduled-action worker.

Polls the queue and processes due actions for every org, in batches. Run with
``python -m clinicflow.worker`` (or the ``clinicflow-worker`` script).
"""
import argparse
import logging
import time
from typing import Optional

from .automation import AutomationService
from .config import Settings, settings as default_settings
from .db import make_engine
from .logging_config import configure_logging

logger = logging.getLogger("clinicflow.worker")


def run_once(service: AutomationService, limit: Optional[int] = None) -> int:
    """Drain due actions until a batch comes back short. Returns the number processed."""
    limit = limit or service.batch_limit
    total = 0
    while True:
        report = service.process_pending_actions(limit)
        total += report.processed
        if report.processed < limit:
            return total


def run_worker(settings: Optional[Settings] = None, once: bool = False) -> None:
    settings = settings or default_settings
    configure_logging(settings.log_level)
    service = AutomationService.from_settings(make_engine(settings), settings)
    service.create_schema()

    logger.info("Worker started; polling every %ss", settings.worker_poll_interval_seconds)
    while True:
        try:
            processed = run_once(service)
            if processed:
                logger.info("Processed %d scheduled actions", processed)
        except Exception:
            # storage outage; keep polling
            logger.exception("Worker iteration failed")
            if once:
                raise
        if once:
            return
        time.sleep(settings.worker_poll_interval_seconds)


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Process due scheduled actions")
    parser.add_argument("--once", action="store_true", help="process one round and exit")
    args = parser.parse_args(argv)
    try:
        run_worker(once=args.once)
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
