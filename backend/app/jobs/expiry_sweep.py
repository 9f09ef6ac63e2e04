"""Standalone expiry sweep runner.

Usage:
    python -m app.jobs.expiry_sweep              # loop every EXPIRY_SWEEP_INTERVAL_SECONDS
    python -m app.jobs.expiry_sweep --once       # single pass (cron)
    python -m app.jobs.expiry_sweep --interval 60
"""
import argparse
import logging
import signal
import sys
import time

from app.config import settings
from app.logging_config import setup_logging
from app.services.expiry_sweep import ExpirySweeper

log = logging.getLogger("expiry-sweep")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Expire overdue pending pencil holds.")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    parser.add_argument(
        "--interval", type=int, default=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
        help="seconds between passes",
    )
    args = parser.parse_args(argv)

    setup_logging()
    sweeper = ExpirySweeper(interval_seconds=args.interval)

    if args.once:
        expired = sweeper.run_once()
        log.info("Expired %d pencil hold(s)", expired)
        return 0

    def shutdown_handler(signum, frame):
        log.info("Received signal %s, shutting down...", signum)
        sweeper.stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    sweeper.start()
    while sweeper.running:
        time.sleep(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
