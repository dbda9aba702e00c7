#!/usr/bin/env python3
"""
Settle a tournament's ratings from its Challonge bracket.

Normal usage (rate a finished tournament once):
    python scripts/settle_tournament.py <tournament_id>

Rerun (bracket was corrected after rating; roll back and rate again):
    python scripts/settle_tournament.py <tournament_id> --rerun

Dry run (compute everything, write nothing):
    python scripts/settle_tournament.py <tournament_id> --dry-run

Audit the season afterwards:
    python scripts/settle_tournament.py <tournament_id> --check
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from boardrank.bracket.client import ChallongeClient
from boardrank.config import settings
from boardrank.db import Tournament, get_session
from boardrank.errors import BoardrankError
from boardrank.services.reconciliation import check_season_invariants
from boardrank.services.settlement import TournamentSettlement
from boardrank.tasks.locks import season_settlement_lock

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Settle a tournament's ratings from Challonge.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("tournament_id", help="Tournament id to settle.")
    parser.add_argument(
        "--rerun",
        action="store_true",
        help="Roll back the previous settlement of this tournament and rate it again.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute updates but do not write to the database.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Run the season consistency audit after settling.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write a JSON summary to this path on completion.",
    )
    return parser


def _write_metrics(path: str, payload: dict) -> None:
    metrics_path = Path(path)
    metrics_path.parent.mkdir(parents=True, exist_ok=True)
    metrics_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def main() -> int:
    args = _build_parser().parse_args()

    started_at = _utc_now_iso()
    print(f"SETTLE  tournament={args.tournament_id}  rerun={args.rerun}  dry_run={args.dry_run}  started={started_at}")
    print("-" * 60)

    t_start = perf_counter()

    try:
        provider = ChallongeClient.from_settings()
        with get_session() as session:
            tournament = session.get(Tournament, args.tournament_id)
            if tournament is None:
                print(f"ERROR: Tournament not found: {args.tournament_id}")
                return 1
            season_id = tournament.season_id

            with season_settlement_lock(session.get_bind(), season_id, settings.settlement_lock_timeout_seconds):
                settlement = TournamentSettlement(session, provider, commit_mapping=not args.dry_run)
                outcome = settlement.settle(args.tournament_id, rerun=args.rerun)

                report = None
                if args.check:
                    session.flush()
                    report = check_season_invariants(session, season_id)

                if args.dry_run:
                    session.rollback()
                    print("(dry run - changes rolled back)")
                else:
                    session.commit()
    except BoardrankError as exc:
        phase = getattr(exc, "phase", None)
        print(f"ERROR ({exc.status_code}{', phase=' + phase if phase else ''}): {exc.message}")
        if args.metrics_json:
            _write_metrics(args.metrics_json, {
                "status": "error",
                "tournament_id": args.tournament_id,
                "started_at": started_at,
                "error": exc.message,
                "phase": phase,
            })
        return 1

    elapsed = perf_counter() - t_start

    print("-" * 60)
    if outcome.is_noop:
        print(f"No-op:                  {outcome.message}")
    if outcome.rollback is not None:
        print(f"Rolled back:            {outcome.rollback.matches_deleted} matches")
    print(f"Processed matches:      {outcome.processed_matches}")
    print(f"Processed players:      {outcome.processed_players}")
    print(f"Skipped matches:        {outcome.skipped_matches}")
    if report is not None:
        print(f"Audit:                  {report.summary()}")
    print(f"Elapsed:                {elapsed:.2f}s")

    if args.metrics_json:
        payload = {
            "status": "success",
            "tournament_id": args.tournament_id,
            "rerun": args.rerun,
            "dry_run": args.dry_run,
            "started_at": started_at,
            "elapsed_s": round(elapsed, 3),
            **outcome.to_dict(),
        }
        if report is not None:
            payload["audit_ok"] = report.ok
        _write_metrics(args.metrics_json, payload)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
