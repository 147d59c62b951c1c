#!/usr/bin/env python3
"""
Sparkmatch — Daily matching operator CLI

Entry point for the external scheduler (cron ``30 0 * * *``, i.e. 06:00 IST)
and for operators.  Provides two subcommands:

  run                    — Run one daily matching sweep and print the summary.
  pending-notifications  — List users with pending match notifications and
                           optionally mark them as sent once delivered.

Usage examples
--------------
  # Run the sweep
  python scripts/run_daily_matching.py run

  # Show pending notifications as JSON
  python scripts/run_daily_matching.py pending-notifications --json

  # Hand them off and mark them sent
  python scripts/run_daily_matching.py pending-notifications --mark-sent
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

# Ensure the project root is importable
sys.path.insert(0, ".")

from app.config import get_settings
from app.database import async_session_factory, engine
from app.jobs.daily_matching_job import DailyMatchingJob
from app.services.notification_service import NotificationService
from app.utils.log_config import configure_logging


# ──────────────────────────────────────────────────────────────────────────────
# Subcommand: run
# ──────────────────────────────────────────────────────────────────────────────

async def cmd_run(args: argparse.Namespace) -> int:
    """Run one sweep and print its summary."""
    job = DailyMatchingJob(async_session_factory)
    try:
        summary = await job.run()
    finally:
        await engine.dispose()

    if summary is None:
        print("Daily matching is already running, skipped.")
        return 1

    if args.json:
        print(summary.model_dump_json(indent=2))
        return 0

    print(f"\n{'=' * 60}")
    print(f"  Daily Matching Summary")
    print(f"{'=' * 60}")
    print(f"  Users processed:   {summary.users_processed}")
    print(f"  Users failed:      {summary.users_failed}")
    print(f"  Matches created:   {summary.matches_created}")
    print(f"    Mutual:          {summary.mutual_count}")
    print(f"    One-way:         {summary.one_way_count}")
    print(f"  Duration:          {summary.duration_seconds:.2f}s")
    print(f"  Users to notify:   {len(summary.digest)}")
    return 0


# ──────────────────────────────────────────────────────────────────────────────
# Subcommand: pending-notifications
# ──────────────────────────────────────────────────────────────────────────────

async def cmd_pending(args: argparse.Namespace) -> int:
    """List (and optionally mark sent) pending match notifications."""
    service = NotificationService()

    try:
        async with async_session_factory() as session:
            pending = await service.collect_pending_notifications(session)

            if args.json:
                print(json.dumps([p.model_dump(mode="json") for p in pending], indent=2))
            else:
                print(f"\n  Users with pending notifications: {len(pending)}")
                for item in pending:
                    print(f"    {item.user_id}  matches={len(item.match_ids)}")

            if args.mark_sent and pending:
                updated = await service.mark_notifications_sent(session, pending)
                print(f"\n  Marked {updated} notification(s) as sent.")
    finally:
        await engine.dispose()
    return 0


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────

def main() -> None:
    parser = argparse.ArgumentParser(
        description="Sparkmatch daily matching — sweep runner and notification hand-off.",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available subcommands",
    )

    # ── run ───────────────────────────────────────────────────────────
    run_parser = subparsers.add_parser(
        "run",
        help="Run one daily matching sweep.",
    )
    run_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the summary as JSON.",
    )

    # ── pending-notifications ─────────────────────────────────────────
    pending_parser = subparsers.add_parser(
        "pending-notifications",
        help="List users with pending match notifications.",
    )
    pending_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the pending list as JSON.",
    )
    pending_parser.add_argument(
        "--mark-sent",
        action="store_true",
        default=False,
        help="Mark the listed notifications as sent.",
    )

    args = parser.parse_args()

    configure_logging(get_settings().LOG_LEVEL)

    if args.command == "run":
        sys.exit(asyncio.run(cmd_run(args)))
    elif args.command == "pending-notifications":
        sys.exit(asyncio.run(cmd_pending(args)))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
