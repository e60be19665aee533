"""Scheduled maintenance entrypoints, meant to be driven by cron or similar.

    python -m portal.jobs rollover [--now 2030-03-01T00:00:00Z]
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime
from typing import Sequence

from sqlalchemy.orm import sessionmaker

from .core.logging import configure_logging
from .db.session import SessionLocal, session_scope
from .services.support_hours import rollover_due_clients
from .services.timecalc import parse_datetime

logger = logging.getLogger(__name__)


def run_rollover(now: datetime | None = None, *, factory: sessionmaker = SessionLocal) -> int:
    """Close every billing cycle that is due and return how many were rolled."""
    with session_scope(factory) as db:
        logs = rollover_due_clients(db, now=now)
    logger.info("support_hours.rollover_run", extra={"extra_data": {"rolled": len(logs)}})
    return len(logs)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="portal.jobs")
    sub = parser.add_subparsers(dest="command", required=True)
    rollover = sub.add_parser("rollover", help="roll over support-hour cycles that are due")
    rollover.add_argument("--now", default=None, help="ISO timestamp to treat as the current time")
    args = parser.parse_args(argv)

    configure_logging()
    if args.command == "rollover":
        run_rollover(parse_datetime(args.now))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
