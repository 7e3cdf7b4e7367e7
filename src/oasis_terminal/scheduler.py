"""Cron table and APScheduler wiring.

All times are UTC. Each job is registered with ``max_instances=1`` and
``coalesce=True`` so a slow run is never overlapped by its own next
firing; different jobs run on separate worker threads and may overlap.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .jobs import JOBS, JobContext, run_job
from .logging_utils import get_logger

log = get_logger("scheduler")

# name -> (crontab expression, description)
SCHEDULE: Dict[str, Tuple[str, str]] = {
    "ingest": ("*/5 * * * *", "Real-time feed ingestion"),
    "liquidation_watch": ("0 */4 * * *", "Liquidation heatmap analysis"),
    "whale_movement": ("0 */2 * * *", "Whale transfer scan"),
    "price_watchdog": ("*/15 * * * *", "Crypto psychological levels"),
    "knowledge_drop": ("0 0,12 * * *", "Knowledge drop"),
    "market_open": ("30 14 * * mon-fri", "NYSE session open"),
    "market_close": ("0 21 * * mon-fri", "NYSE session close"),
    "weekly_wrap": ("0 19 * * sun", "Weekly market wrap"),
    "forex_watchdog": ("*/30 * * * *", "FX psychological levels"),
    "forex_weekly": ("0 20 * * sun", "Weekly forex outlook"),
    "morning_brief": ("30 13 * * mon-fri", "Morning brief"),
    "london_handover": ("0 12 * * mon-fri", "London session handover"),
    "fear_greed": ("0 6 * * *", "Fear & greed snapshot"),
}


def describe_schedule() -> List[str]:
    """One line per job: ``name  crontab  description``."""
    width = max(len(n) for n in SCHEDULE)
    return [
        f"{name:<{width}}  {cron:<18}  {desc}"
        for name, (cron, desc) in SCHEDULE.items()
    ]


def build_scheduler(
    ctx: JobContext,
    blocking: bool = True,
    only: Optional[List[str]] = None,
) -> BaseScheduler:
    """Create a scheduler with every job in :data:`SCHEDULE` registered.

    ``only`` restricts registration to the named jobs. Unknown names raise
    ``KeyError``.
    """
    names = list(only) if only else list(SCHEDULE)
    scheduler_cls = BlockingScheduler if blocking else BackgroundScheduler
    scheduler = scheduler_cls(timezone="UTC")

    for name in names:
        cron, desc = SCHEDULE[name]
        if name not in JOBS:
            raise KeyError(name)
        scheduler.add_job(
            run_job,
            CronTrigger.from_crontab(cron, timezone="UTC"),
            args=(ctx, name),
            id=name,
            name=desc,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
            replace_existing=True,
        )
    log.info("scheduler_built jobs=%d", len(names))
    return scheduler
