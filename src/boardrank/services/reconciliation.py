"""
Season consistency audit.

Checks the invariants that tie rating rows, matches and rating events
together. Nothing here writes; the report lists what is wrong so an admin
can decide which tournament to rerun.

Checked per season:
- every rating is at or above the floor
- floor + sum of a player's event deltas equals their current rating
- matches_played equals the player's event count
- each match has exactly two events, and their rating_after values are the
  match's winner/loser snapshots
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from boardrank.db.models import Match, PlayerSeasonRating, RatingEvent
from boardrank.elo.constants import RATING_FLOOR

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationReport:
    season_id: str
    players_checked: int = 0
    matches_checked: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def summary(self) -> str:
        status = "OK" if self.ok else f"{len(self.problems)} problems"
        return (
            f"Season {self.season_id}: {self.players_checked} players, "
            f"{self.matches_checked} matches checked, {status}"
        )


def check_season_invariants(session: Session, season_id: str) -> ReconciliationReport:
    report = ReconciliationReport(season_id=season_id)

    event_totals = {
        row.user_id: (row.delta_sum or 0, row.event_count)
        for row in session.execute(
            select(
                RatingEvent.user_id,
                func.sum(RatingEvent.delta).label("delta_sum"),
                func.count(RatingEvent.id).label("event_count"),
            )
            .where(RatingEvent.season_id == season_id)
            .group_by(RatingEvent.user_id)
        )
    }

    ratings = (
        session.query(PlayerSeasonRating)
        .filter(PlayerSeasonRating.season_id == season_id)
        .all()
    )
    for rating in ratings:
        report.players_checked += 1
        delta_sum, event_count = event_totals.pop(rating.user_id, (0, 0))

        if rating.rating_current < RATING_FLOOR:
            report.problems.append(
                f"{rating.user_id}: rating {rating.rating_current} below floor {RATING_FLOOR}"
            )
        if RATING_FLOOR + delta_sum != rating.rating_current:
            report.problems.append(
                f"{rating.user_id}: rating {rating.rating_current} != {RATING_FLOOR} + {delta_sum} from events"
            )
        if rating.matches_played != event_count:
            report.problems.append(
                f"{rating.user_id}: matches_played {rating.matches_played} != {event_count} events"
            )

    for user_id in event_totals:
        report.problems.append(f"{user_id}: has rating events but no rating row")

    events_by_match: dict[str, list[RatingEvent]] = defaultdict(list)
    for event in session.query(RatingEvent).filter(RatingEvent.season_id == season_id):
        events_by_match[event.match_id].append(event)

    if events_by_match:
        matches = session.query(Match).filter(Match.id.in_(list(events_by_match))).all()
        for match in matches:
            report.matches_checked += 1
            events = events_by_match[match.id]
            if len(events) != 2:
                report.problems.append(f"match {match.id}: {len(events)} rating events, expected 2")
                continue
            after = {event.user_id: event.rating_after for event in events}
            loser_id = match.p2_user_id if match.winner_user_id == match.p1_user_id else match.p1_user_id
            if after.get(match.winner_user_id) != match.winner_points:
                report.problems.append(
                    f"match {match.id}: winner snapshot {match.winner_points} != event {after.get(match.winner_user_id)}"
                )
            if after.get(loser_id) != match.loser_points:
                report.problems.append(
                    f"match {match.id}: loser snapshot {match.loser_points} != event {after.get(loser_id)}"
                )

    for problem in report.problems:
        logger.warning("Season %s: %s", season_id, problem)
    logger.info(report.summary())
    return report
