# -*- coding: utf-8 -*-
"""Oasis Terminal runner."""

from __future__ import annotations

# stdlib
import argparse
import os
import sys
from typing import List, Optional

# Load .env early so config is available to subsequent imports.
from dotenv import load_dotenv

# If DOTENV_FILE is set, load that; otherwise default to .env
_env_file = os.getenv("DOTENV_FILE")
if _env_file:
    load_dotenv(_env_file)  # e.g. DOTENV_FILE=.env.staging
else:
    load_dotenv()

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED  # noqa: E402

from .config import get_settings  # noqa: E402
from .errors import InvalidConfiguration  # noqa: E402
from .health_endpoint import start_health_server, update_health_status  # noqa: E402
from .jobs import JOBS, JobContext, run_job  # noqa: E402
from .logging_utils import get_logger, setup_logging  # noqa: E402
from .scheduler import build_scheduler, describe_schedule  # noqa: E402

log = get_logger("runner")


def _on_job_event(event) -> None:
    ok = event.exception is None and bool(getattr(event, "retval", False))
    update_health_status(job=event.job_id, ok=ok)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="oasis-terminal")
    ap.add_argument("--once", metavar="JOB", help="Run a single job and exit")
    ap.add_argument("--list", action="store_true", help="Print the job schedule and exit")
    ap.add_argument(
        "--no-server",
        action="store_true",
        help="Do not start the keep-alive / trigger HTTP server",
    )
    args = ap.parse_args(argv)

    if args.list:
        for line in describe_schedule():
            print(line)
        return 0

    setup_logging()
    settings = get_settings()
    try:
        warnings = settings.validate()
    except InvalidConfiguration as e:
        log.error("config_invalid err=%s", e)
        return 2
    for w in warnings:
        log.warning("config_warning msg=%s", w)

    ctx = JobContext.create(settings)

    if args.once:
        if args.once not in JOBS:
            log.error("unknown_job name=%s known=%s", args.once, ",".join(JOBS))
            return 2
        return 0 if run_job(ctx, args.once) else 1

    if settings.feature_keepalive and not args.no_server:
        start_health_server(ctx, settings.port)

    scheduler = build_scheduler(ctx, blocking=True)
    scheduler.add_listener(_on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    log.info("oasis_terminal_started jobs=%d port=%d", len(JOBS), settings.port)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        log.info("oasis_terminal_stopping")
    return 0


if __name__ == "__main__":
    sys.exit(main())
