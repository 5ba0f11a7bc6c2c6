"""Cron entry point for a single library scan."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path

from src.rewinder.config import load_config
from src.rewinder.logging import configure_logging
from src.rewinder.services.engine import LifecycleEngine


@dataclass(slots=True)
class ScanSummary:
    discovered: int
    revived: int
    gone: int
    missing_trash: int
    orphaned: int
    trashed: int
    errors: int


def perform_scan(*, roots: list[Path] | None = None, sweep: bool = True) -> ScanSummary:
    """Scan libraries and optionally retry pending consensus transitions."""
    config = load_config()
    configure_logging(config.settings.log_level)
    engine = LifecycleEngine.from_config(config)

    report = engine.scan(roots)
    trashed = 0
    if sweep and not report.aborted:
        trashed = len(engine.sweep_consensus().trashed)
    return ScanSummary(
        discovered=len(report.discovered),
        revived=len(report.revived),
        gone=len(report.gone),
        missing_trash=len(report.missing_trash),
        orphaned=len(report.orphaned),
        trashed=trashed,
        errors=len(report.errors),
    )


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Scan media libraries once.")
    parser.add_argument(
        "roots",
        nargs="*",
        type=Path,
        help="Library roots to scan (defaults to every configured root).",
    )
    parser.add_argument(
        "--no-sweep",
        action="store_true",
        help="Skip re-evaluating consensus after the scan.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    try:
        summary = perform_scan(roots=args.roots or None, sweep=not args.no_sweep)
    except Exception as exc:
        print(f"scan failed: {exc}", file=sys.stderr)
        return 2

    print(
        f"scan done, discovered={summary.discovered}, revived={summary.revived}, "
        f"gone={summary.gone}, missing_trash={summary.missing_trash}, "
        f"orphaned={summary.orphaned}, trashed={summary.trashed}, errors={summary.errors}",
        file=sys.stdout,
    )
    return 1 if summary.orphaned else 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
