"""
Tourney Progression - headless entry point.

Usage:
    python main.py finalize <match_id> <home_score> <away_score>
    python main.py reseed <stage_id> [--destructive]
    python main.py resync <stage_id>
    python main.py standings <stage_id>
"""

import argparse
import json
import sys
from typing import Optional

from PySide6.QtCore import QCoreApplication

from config import init_config, APP_NAME, APP_VERSION


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(prog="tourney-progression",
                                     description="Tournament progression engine")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from settings)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    finalize = subparsers.add_parser("finalize", help="Record a final score and progress")
    finalize.add_argument("match_id", type=int)
    finalize.add_argument("home_score", type=int)
    finalize.add_argument("away_score", type=int)

    reseed = subparsers.add_parser("reseed", help="Rebuild a knockout stage from its source")
    reseed.add_argument("stage_id", type=int)
    reseed.add_argument("--destructive", action="store_true",
                        help="Replace existing (unstarted) matches")

    resync = subparsers.add_parser("resync", help="Re-run propagation and standings for a stage")
    resync.add_argument("stage_id", type=int)

    standings = subparsers.add_parser("standings", help="Print a stage's standings")
    standings.add_argument("stage_id", type=int)

    return parser


def run(args: argparse.Namespace, app) -> int:
    """Execute one parsed command against an application controller."""
    if args.command == "finalize":
        report = app.finalize_match(args.match_id, args.home_score, args.away_score)
        print(json.dumps(report.to_dict(), indent=2))
        return 0 if report.ok else 1

    if args.command == "reseed":
        outcome = app.force_reseed(args.stage_id, allow_destructive=args.destructive)
        print(json.dumps(outcome.to_dict(), indent=2))
        return 1 if outcome.failed else 0

    if args.command == "resync":
        outcomes = app.engine.resync_stage(args.stage_id)
        print(json.dumps([o.to_dict() for o in outcomes], indent=2))
        return 1 if any(o.failed for o in outcomes) else 0

    rows = app.standings(args.stage_id)
    print(json.dumps([row.model_dump() for row in rows], indent=2))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for Tourney Progression."""
    args = create_parser().parse_args(argv)

    # Initialize configuration and directories
    init_config(args.log_level)

    qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    qt_app.setApplicationName(APP_NAME)
    qt_app.setApplicationVersion(APP_VERSION)

    from app import TourneyProgressionApp
    return run(args, TourneyProgressionApp())


if __name__ == "__main__":
    sys.exit(main())
