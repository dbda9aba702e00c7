"""
Boardrank services - business logic around tournament ratings.

Settlement pipeline:
1. Participants: map Challonge entries to registered players by [CODE]
2. Settlement: replay completed matches and write rating changes
3. Rollback: undo a previous settlement before a rerun

Around it:
- Seasons: active season, finalize, tournament creation, registration
- Leaderboard: standings and per-player history
- Reconciliation: audit the rating/event invariants of a season

Usage:
    from boardrank.services import TournamentSettlement, rollback_tournament
"""

from boardrank.services.leaderboard import get_leaderboard, get_player_history
from boardrank.services.participants import (
    MappedParticipant,
    build_participant_map,
    load_registrations,
    sync_participant_metadata,
)
from boardrank.services.reconciliation import ReconciliationReport, check_season_invariants
from boardrank.services.rollback import RollbackResult, rollback_tournament
from boardrank.services.seasons import (
    create_tournament,
    finalize_active_season,
    get_active_season,
    register_player,
)
from boardrank.services.settlement import (
    SettlementOutcome,
    SettlementPhase,
    TournamentSettlement,
)

__all__ = [
    # Participants
    "MappedParticipant",
    "build_participant_map",
    "load_registrations",
    "sync_participant_metadata",
    # Settlement
    "SettlementOutcome",
    "SettlementPhase",
    "TournamentSettlement",
    # Rollback
    "RollbackResult",
    "rollback_tournament",
    # Seasons
    "create_tournament",
    "finalize_active_season",
    "get_active_season",
    "register_player",
    # Read side
    "get_leaderboard",
    "get_player_history",
    "ReconciliationReport",
    "check_season_invariants",
]
