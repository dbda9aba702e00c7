"""
Tournament rating rollback.

Undoes everything a previous settlement of one tournament wrote: each
affected player's season rating goes back to its value before their first
match in the tournament, their match count drops by the number of matches
they played there, and the tournament's rating events and matches are
deleted.

The restore point is the rating_before of the player's earliest event in
this tournament. That is only correct while no other tournament in the same
season was settled for that player after this one; rolling back an older
tournament underneath a newer one throws away the newer tournament's
changes for the shared players. Reruns are expected to target the most
recently settled tournament.

first_reached_current_rating_at is left as it is. A player whose rating
ends up unchanged after a rerun keeps the timestamp from the rolled-back
settlement, which only matters for the leaderboard tiebreak.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from boardrank.db.models import Match, PlayerSeasonRating, RatingEvent, utcnow

logger = logging.getLogger(__name__)


@dataclass
class _Adjustment:
    """How far one player's rating row has to be unwound."""
    matches: int = 0
    rating_before: int = 0


@dataclass
class RollbackResult:
    """Summary of a rollback."""
    matches_deleted: int = 0
    events_deleted: int = 0
    players_restored: int = 0
    restored_ratings: dict[str, int] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return self.matches_deleted == 0

    def summary(self) -> str:
        return (
            f"Rollback: {self.matches_deleted} matches, {self.events_deleted} events deleted, "
            f"{self.players_restored} players restored"
        )


def rollback_tournament(session: Session, tournament_id: str, season_id: str) -> RollbackResult:
    """
    Reverse a tournament's previous settlement.

    Running it twice is safe: the second call finds no matches and changes
    nothing.

    Args:
        session: Active SQLAlchemy session. Caller is responsible for commit.
        tournament_id: Tournament whose matches and events are removed
        season_id: Season whose rating rows are restored

    Returns:
        RollbackResult with deletion and restore counts
    """
    result = RollbackResult()

    match_ids = list(
        session.execute(select(Match.id).where(Match.tournament_id == tournament_id)).scalars()
    )
    if not match_ids:
        logger.info("Rollback of tournament %s: nothing to undo", tournament_id)
        return result

    events = session.execute(
        select(RatingEvent.user_id, RatingEvent.rating_before)
        .where(RatingEvent.match_id.in_(match_ids))
        .order_by(RatingEvent.created_at.asc(), RatingEvent.id.asc())
    ).all()

    adjustments: dict[str, _Adjustment] = {}
    for event in events:
        adjustment = adjustments.get(event.user_id)
        if adjustment is None:
            # First event in chronological order carries the restore point
            adjustment = _Adjustment(rating_before=event.rating_before)
            adjustments[event.user_id] = adjustment
        adjustment.matches += 1

    if adjustments:
        rows = (
            session.query(PlayerSeasonRating)
            .filter(
                PlayerSeasonRating.season_id == season_id,
                PlayerSeasonRating.user_id.in_(list(adjustments)),
            )
            .all()
        )
        now = utcnow()
        for row in rows:
            adjustment = adjustments[row.user_id]
            row.rating_current = adjustment.rating_before
            row.matches_played = max((row.matches_played or 0) - adjustment.matches, 0)
            row.updated_at = now
            result.restored_ratings[row.user_id] = adjustment.rating_before
        result.players_restored = len(rows)
        session.flush()

    deleted_events = session.execute(
        delete(RatingEvent)
        .where(RatingEvent.match_id.in_(match_ids))
        .execution_options(synchronize_session="fetch")
    )
    deleted_matches = session.execute(
        delete(Match)
        .where(Match.tournament_id == tournament_id)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()

    result.events_deleted = deleted_events.rowcount or 0
    result.matches_deleted = deleted_matches.rowcount or 0

    logger.info("Tournament %s: %s", tournament_id, result.summary())
    return result
