#!/usr/bin/env python3
"""
Run the overdue sweep once, or keep it running on its daily schedule.

Uses the active configuration (get_active_config): database URL, sweep
hour/minute and tick interval.

Usage:
    python3 scripts/run_sweeper.py [--date YYYY-MM-DD] [--tenant UUID]
    python3 scripts/run_sweeper.py --loop

Examples:
    # Sweep every tenant as of today (UTC)
    python3 scripts/run_sweeper.py

    # Re-run a past day for one tenant
    python3 scripts/run_sweeper.py --date 2025-03-01 --tenant 6f1c...

    # Run the in-process daily scheduler until interrupted
    python3 scripts/run_sweeper.py --loop
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import date
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Flag overdue installments (one-shot or scheduled).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="Sweep as of this date (YYYY-MM-DD). Default: today in UTC.",
    )
    parser.add_argument(
        "--tenant",
        type=UUID,
        default=None,
        help="Only sweep this tenant.",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="Run the daily scheduler until interrupted.",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: database.url from the active config).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
    )
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if args.loop and (args.date or args.tenant):
        print("ERROR: --loop cannot be combined with --date or --tenant", file=sys.stderr)
        return 2

    # Lazy imports so we fail fast on args first
    from settlement_batch.domain.schedule import DailySchedule
    from settlement_batch.services import OverdueSweeper, SweepScheduler
    from settlement_config import get_active_config
    from settlement_kernel.db.engine import (
        create_tables,
        get_session,
        get_session_factory,
        init_engine_from_url,
    )
    from settlement_kernel.domain.clock import SystemClock
    from settlement_kernel.logging_config import configure_logging

    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = get_active_config()
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    init_engine_from_url(
        args.db_url or config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
    )
    create_tables()
    clock = SystemClock()

    if not args.loop:
        session = get_session()
        try:
            result = OverdueSweeper(session, clock).sweep(args.date, args.tenant)
        finally:
            session.close()
        print(
            f"as_of={result.as_of.isoformat()} count={result.count} flagged={result.flagged} "
            f"cleared={result.cleared} tenants={result.tenants_processed} "
            f"failed={len(result.failed_tenants)}"
        )
        return 1 if result.failed_tenants else 0

    scheduler = SweepScheduler(
        get_session_factory(),
        clock,
        DailySchedule(hour=config.sweep.hour_utc, minute=config.sweep.minute_utc),
        tick_interval_seconds=config.sweep.tick_interval_seconds,
    )
    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
