"""Cron entry point for deleting expired trash."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import datetime

from src.rewinder.config import load_config
from src.rewinder.logging import configure_logging
from src.rewinder.services.engine import LifecycleEngine


@dataclass(slots=True)
class ReapSummary:
    eligible: int
    removed: int
    failed: int
    dry_run: bool


def perform_reap(*, dry_run: bool, reference_time: datetime | None = None) -> ReapSummary:
    """Execute the reaper and return summary counters."""
    config = load_config()
    configure_logging(config.settings.log_level)
    clock = (lambda: reference_time) if reference_time is not None else None
    engine = LifecycleEngine.from_config(config, clock=clock)

    report = engine.reap(dry_run=dry_run)
    return ReapSummary(
        eligible=len(report.eligible),
        removed=len(report.removed),
        failed=len(report.errors),
        dry_run=report.dry_run,
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Delete trashed media past its grace period.")
    parser.add_argument("--dry-run", action="store_true", help="Only report eligible items without deleting.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_reap(dry_run=args.dry_run)
    except Exception as exc:
        print(f"reap failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(f"reap dry-run, eligible={summary.eligible}", file=sys.stdout)
    else:
        print(
            f"reap done, eligible={summary.eligible}, removed={summary.removed}, failed={summary.failed}",
            file=sys.stdout,
        )
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
