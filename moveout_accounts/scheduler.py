"""Background scheduling of the inactivity sweep."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .config import Settings
from .domain.sweeper import InactivitySweeper

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "inactivity_sweep"


def build_trigger(settings: Settings) -> CronTrigger | IntervalTrigger:
    """Cron expression when ``SWEEP_CRON`` is set, otherwise a fixed interval."""
    if settings.sweep_cron:
        return CronTrigger.from_crontab(settings.sweep_cron, timezone="UTC")
    return IntervalTrigger(seconds=settings.sweep_interval_seconds, timezone="UTC")


def start_scheduler(sweeper: InactivitySweeper, settings: Settings) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        sweeper.run,
        build_trigger(settings),
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "inactivity sweep scheduled (%s)",
        settings.sweep_cron or f"every {settings.sweep_interval_seconds}s",
    )
    return scheduler
