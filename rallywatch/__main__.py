"""CLI entry point for rallywatch.

Usage::

    python -m rallywatch --job ingest
    python -m rallywatch --job predict --db rallies.db
    python -m rallywatch --job all
    python -m rallywatch --serve
"""

from __future__ import annotations

import argparse
import logging
import time

from rallywatch.config import DB_PATH

JOB_ORDER: tuple[str, ...] = ("ingest", "predict", "updates")


def main() -> None:
    """Parse CLI arguments and run jobs once, or serve the scheduler."""
    parser = argparse.ArgumentParser(
        prog="rallywatch",
        description="Ingest campaign rally schedules and forecast rally traffic.",
    )
    parser.add_argument(
        "--job",
        type=str,
        default="all",
        choices=[*JOB_ORDER, "all"],
        help="Run only this job once (default: all jobs in order)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the background scheduler until interrupted",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=DB_PATH,
        help=f"SQLite database path (default: {DB_PATH})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    from rallywatch.scheduler import build_scheduler

    if args.serve:
        scheduler = build_scheduler(db_path=args.db)
        scheduler.start(run_immediately=True)
        try:
            while True:
                time.sleep(60)
        except KeyboardInterrupt:
            scheduler.stop()
        return

    scheduler = build_scheduler(db_path=args.db, threaded=False)
    jobs = JOB_ORDER if args.job == "all" else (args.job,)
    for name in jobs:
        scheduler.trigger(name)


if __name__ == "__main__":
    main()
