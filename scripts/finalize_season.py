#!/usr/bin/env python3
"""
Close the active season, or open a new one.

    python scripts/finalize_season.py                 # finalize the active season
    python scripts/finalize_season.py --start         # open a new season
    python scripts/finalize_season.py --start --k 32  # ... with its own base K

Finalizing is irreversible.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from boardrank.config import settings
from boardrank.db.session import get_session
from boardrank.errors import BoardrankError
from boardrank.services.seasons import finalize_active_season, start_season

logging.basicConfig(level=settings.log_level, format=settings.log_format)
logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Finalize the active season or start a new one.")
    parser.add_argument("--start", action="store_true", help="Start a new active season instead.")
    parser.add_argument("--k", type=int, default=None, help="Base K for the new season.")
    args = parser.parse_args()

    try:
        with get_session() as session:
            if args.start:
                season = start_season(session, k_factor=args.k)
                logger.info("Season %s is now active", season.id)
            else:
                season = finalize_active_season(session)
                logger.info("Season %s finalized at %s", season.id, season.end_at)
    except BoardrankError as exc:
        logger.error("%s", exc.message)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
