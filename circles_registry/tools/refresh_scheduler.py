"""
Registry refresh scheduler: check staleness on an interval via APScheduler and
refresh when the cache is older than the update interval (24h by default).

Usage:
  python -m circles_registry.tools.refresh_scheduler             # start scheduler
  python -m circles_registry.tools.refresh_scheduler --run-now   # one check/refresh, then exit
  python -m circles_registry.tools.refresh_scheduler --run-now --force --mode full
"""

from __future__ import annotations

import argparse
import sys

from apscheduler.schedulers.blocking import BlockingScheduler

from circles_registry.config.settings import get_settings
from circles_registry.registry_logging import get_logger
from circles_registry.service import CirclesUsersService, build_service

logger = get_logger(__name__)

JOB_ID = "circles_users_refresh"


def run_refresh_if_due(service: CirclesUsersService, mode: str = "auto", force: bool = False) -> bool:
    """
    Refresh when needs_refresh() (or force). Returns False only when a refresh
    ran and failed.
    """
    if not force and not service.needs_refresh():
        logger.info("refresh_scheduler_skip", reason="cache_fresh")
        return True
    logger.info("refresh_scheduler_job_start", mode=mode, forced=force)
    result = service.refresh(mode)
    if result.success:
        logger.info(
            "refresh_scheduler_job_end",
            success=True,
            mode=result.mode,
            total_count=result.total_count,
            new_count=result.new_count,
            updated_count=result.updated_count,
        )
    else:
        logger.warning("refresh_scheduler_job_end", success=False, mode=result.mode, error=result.error)
    return result.success


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Refresh the Circles users cache whenever it goes stale."
    )
    parser.add_argument("--run-now", action="store_true", help="Run one check immediately, then exit.")
    parser.add_argument("--force", action="store_true", help="With --run-now: refresh even if the cache is fresh.")
    parser.add_argument("--mode", choices=("auto", "full", "incremental"), default="auto")
    args = parser.parse_args(argv)

    settings = get_settings()
    service = build_service(settings)

    if args.run_now:
        ok = run_refresh_if_due(service, args.mode, force=args.force)
        return 0 if ok else 1

    scheduler = BlockingScheduler()
    # max_instances=1: refreshes never overlap against the same cache
    scheduler.add_job(
        run_refresh_if_due,
        "interval",
        args=(service, args.mode),
        seconds=settings.refresh_check_interval_sec,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info("refresh_scheduler_started", check_interval_sec=settings.refresh_check_interval_sec, mode=args.mode)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("refresh_scheduler_stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
