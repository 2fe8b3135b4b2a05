#!/usr/bin/env python3
"""Scheduled maintenance for turn progress, vacancy counters and the activity log.

Usage:
    python scripts/run_maintenance.py recalculate
    python scripts/run_maintenance.py vacancy
    python scripts/run_maintenance.py prune [--days 90]
    python scripts/run_maintenance.py drift [--repair]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from turnboard.config import SessionLocal, settings  # noqa: E402
from turnboard.core.logging import configure_logging  # noqa: E402
from turnboard.services import activity as activity_service  # noqa: E402
from turnboard.services import turns as turn_service  # noqa: E402
from turnboard.services import units as unit_service  # noqa: E402

logger = logging.getLogger("turnboard.maintenance")


def recalculate(session) -> int:
    result = turn_service.recalculate_all_progress(session)
    if not result.success:
        logger.error("Progress recalculation failed: %s", result.error)
        return 1
    print(f"Recalculated {result.data['updated_count']} open turns.")
    return 0


def vacancy(session) -> int:
    result = unit_service.update_all_vacant_unit_days(session)
    print(f"Refreshed days vacant on {result.data['updated_count']} units.")
    if not result.success:
        logger.error("%s", result.error)
        return 1
    return 0


def prune(session, days: int) -> int:
    total = 0
    while True:
        result = activity_service.delete_old_activities(session, days)
        if not result.success:
            logger.error("Activity pruning stopped after %d rows: %s", total, result.error)
            return 1
        total += result.data["deleted_count"]
        if result.data["deleted_count"] < result.data["batch_size"]:
            break
    print(f"Deleted {total} activities older than {days} days.")
    return 0


def drift(session, repair: bool) -> int:
    result = turn_service.repair_link_drift(session) if repair else turn_service.find_link_drift(session)
    if not result.success:
        logger.error("Drift check failed: %s", result.error)
        return 1
    if repair:
        print(f"Repaired {result.data['repaired_count']} unit/turn links.")
        return 0
    for entry in result.data:
        print(
            f"Unit {entry['unit_number']}: links {entry['current_turn_id'] or '-'}, "
            f"expected {entry['expected_turn_id'] or '-'}"
        )
    print(f"{len(result.data)} units with link drift.")
    return 2 if result.data else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("recalculate", help="Recompute progress and day counters on open turns")
    subcommands.add_parser("vacancy", help="Refresh days vacant on vacant units")
    prune_parser = subcommands.add_parser("prune", help="Delete activities past the retention window")
    prune_parser.add_argument("--days", type=int, default=settings.activity_retention_days)
    drift_parser = subcommands.add_parser("drift", help="Report unit/turn link drift")
    drift_parser.add_argument("--repair", action="store_true", help="Re-point units at their open turn")
    return parser


def main(argv: Optional[Sequence[str]] = None, session_factory=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.log_level, json_logs=settings.log_json)
    with (session_factory or SessionLocal)() as session:
        if args.command == "recalculate":
            return recalculate(session)
        if args.command == "vacancy":
            return vacancy(session)
        if args.command == "prune":
            return prune(session, args.days)
        return drift(session, args.repair)


if __name__ == "__main__":
    sys.exit(main())
