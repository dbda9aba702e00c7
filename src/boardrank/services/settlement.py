"""
Tournament settlement - turns a finished Challonge bracket into rating changes.

This is the single entry point that rates a tournament. The API route and
scripts/settle_tournament.py both call it.

Flow:
1. Load tournament + season, resolve the Challonge slug and base K
2. Fetch participants and completed matches from the bracket provider
3. Map participants to registered users by their [CODE] prefix and store
   the mapping (committed straight away)
4. On rerun, roll back the tournament's previous settlement
5. Load rating rows for every involved player into an in-memory RatingState
6. Replay matches in completion order, in memory, no DB calls per match
7. Write matches, rating events, rating rows and the tournament state

Matches are replayed strictly one after another; every rating change feeds
the next match's input, so the order from completed_matches_in_order() fully
determines the result.

Concurrency: rating rows carry an optimistic version counter. If another
settlement updated one of the rows after it was loaded, the flush fails and
the run aborts with ConcurrentSettlementError. Callers that can should also
hold tasks.locks.season_settlement_lock around the whole run.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from boardrank.bracket.client import BracketProvider, extract_slug
from boardrank.bracket.models import ProviderMatch, completed_matches_in_order
from boardrank.config import settings
from boardrank.db.models import (
    TOURNAMENT_RATED,
    Match,
    PlayerSeasonRating,
    RatingEvent,
    Season,
    Tournament,
    utcnow,
)
from boardrank.elo.calculator import EloContext, apply_elo
from boardrank.elo.classifier import classify_match, is_double_elimination
from boardrank.elo.constants import RATING_FLOOR
from boardrank.errors import (
    ConcurrentSettlementError,
    NotFoundError,
    PersistenceError,
    SettlementError,
    TournamentStateError,
    ValidationError,
)
from boardrank.services.participants import (
    MappedParticipant,
    build_participant_map,
    load_registrations,
    sync_participant_metadata,
)
from boardrank.services.rollback import RollbackResult, rollback_tournament

logger = logging.getLogger(__name__)

NO_COMPLETED_MATCHES = "No completed matches to rate."
NO_VALID_MATCHES = "No valid matches processed."


class SettlementPhase(str, Enum):
    """Where a settlement run currently is."""
    FETCHING = "fetching"
    MAPPING = "mapping"
    ROLLING_BACK = "rolling_back"
    REPLAYING = "replaying"
    PERSISTING = "persisting"
    DONE = "done"


# ---------------------------------------------------------------------------
# In-memory replay state
# ---------------------------------------------------------------------------

@dataclass
class _PlayerState:
    """Rating of one player while a settlement run replays matches."""
    user_id: str
    rating: int = RATING_FLOOR
    matches: int = 0
    first_reached: Optional[datetime] = None


class RatingState:
    """
    Ratings of every player involved in one settlement run.

    Built from the player_season_ratings rows at the start of the run and
    written back at the end. Owned by a single run, never shared.
    """

    def __init__(self, rows: Iterable[PlayerSeasonRating]):
        self._rows: dict[str, PlayerSeasonRating] = {}
        self._states: dict[str, _PlayerState] = {}
        for row in rows:
            self._rows[row.user_id] = row
            self._states[row.user_id] = _PlayerState(
                user_id=row.user_id,
                rating=row.rating_current if row.rating_current is not None else RATING_FLOOR,
                matches=row.matches_played or 0,
                first_reached=row.first_reached_current_rating_at,
            )

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._states

    def get(self, user_id: str) -> Optional[_PlayerState]:
        return self._states.get(user_id)

    def top_rating(self) -> int:
        """Highest rating held by anyone in the run, never below the floor."""
        top = RATING_FLOOR
        for state in self._states.values():
            top = max(top, state.rating)
        return top

    def write_back(self) -> int:
        """Copy the replayed values onto the ORM rows. Returns rows touched."""
        now = utcnow()
        for user_id, state in self._states.items():
            row = self._rows[user_id]
            row.rating_current = state.rating
            row.matches_played = state.matches
            row.first_reached_current_rating_at = state.first_reached
            row.updated_at = now
        return len(self._rows)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

@dataclass
class SettlementOutcome:
    """Result of TournamentSettlement.settle()."""
    tournament_id: str
    processed_matches: int = 0
    processed_players: int = 0
    skipped_matches: int = 0
    message: Optional[str] = None
    rollback: Optional[RollbackResult] = None
    matches: list[Match] = field(default_factory=list, repr=False)

    @property
    def is_noop(self) -> bool:
        return self.message is not None

    def to_dict(self) -> dict:
        if self.is_noop:
            payload = {"ok": True, "message": self.message}
            if self.skipped_matches:
                payload["skipped_matches"] = self.skipped_matches
            return payload
        return {
            "ok": True,
            "processed_matches": self.processed_matches,
            "processed_players": self.processed_players,
            "skipped_matches": self.skipped_matches,
        }

    def summary(self) -> str:
        if self.is_noop:
            return f"Tournament {self.tournament_id}: {self.message} (skipped {self.skipped_matches})"
        return (
            f"Tournament {self.tournament_id}: {self.processed_matches} matches rated, "
            f"{self.processed_players} players, {self.skipped_matches} skipped"
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class TournamentSettlement:
    """
    Rates one tournament from its Challonge bracket.

    Usage:

        provider = ChallongeClient.from_settings()
        with get_session() as session:
            outcome = TournamentSettlement(session, provider).settle(tournament_id)

    Usage - redo a tournament after its bracket was corrected:

        outcome = TournamentSettlement(session, provider).settle(tournament_id, rerun=True)

    Everything except the participant mapping is only flushed; the caller
    commits (get_session does it on exit).
    """

    def __init__(
        self,
        session: Session,
        provider: BracketProvider,
        default_k_factor: Optional[int] = None,
        commit_mapping: bool = True,
    ) -> None:
        self.session = session
        self.provider = provider
        self.default_k_factor = default_k_factor or settings.default_k_factor
        # Dry runs turn this off so nothing at all is committed
        self.commit_mapping = commit_mapping
        self.phase: Optional[SettlementPhase] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def settle(self, tournament_id: str, rerun: bool = False) -> SettlementOutcome:
        """
        Settle a tournament.

        Args:
            tournament_id: Tournament to rate
            rerun: Roll back a previous settlement first and rate again

        Returns:
            SettlementOutcome with processed/skipped counts, or a no-op
            outcome carrying a message when nothing could be rated

        Raises:
            NotFoundError: Tournament or its season does not exist
            ValidationError: No Challonge slug can be resolved
            TournamentStateError: Already rated and rerun not requested
            ProviderAPIError: Challonge answered with an error
            PersistenceError: A database write failed
            ConcurrentSettlementError: A rating row changed underneath us
        """
        self.phase = None
        try:
            return self._settle(tournament_id, rerun)
        except StaleDataError as exc:
            error = ConcurrentSettlementError(
                f"Ratings for tournament {tournament_id} were changed by another settlement."
            )
            error.phase = self._phase_name()
            logger.error("Settlement of %s aborted in phase %s: %s", tournament_id, error.phase, exc)
            raise error from exc
        except SettlementError as exc:
            if exc.phase is None:
                exc.phase = self._phase_name()
            logger.error("Settlement of %s aborted in phase %s: %s", tournament_id, exc.phase, exc.message)
            raise

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _settle(self, tournament_id: str, rerun: bool) -> SettlementOutcome:
        tournament = self.session.get(Tournament, tournament_id)
        if tournament is None:
            raise NotFoundError("Tournament not found.")
        if tournament.state == TOURNAMENT_RATED and not rerun:
            raise TournamentStateError("Tournament is already rated. Use rerun to rate it again.")

        slug = tournament.challonge_slug or extract_slug(tournament.challonge_url)
        if not slug:
            raise ValidationError("Tournament Challonge slug missing.")

        season = self.session.get(Season, tournament.season_id)
        if season is None:
            raise NotFoundError("Season not found for tournament.")
        season_id = season.id
        k_factor = season.k_factor or self.default_k_factor

        registrations = load_registrations(self.session, tournament_id)

        self._enter(SettlementPhase.FETCHING, tournament_id)
        participants = self.provider.fetch_participants(slug)
        completed = completed_matches_in_order(self.provider.fetch_matches(slug))
        logger.info(
            "Fetched %d participants and %d completed matches for %s",
            len(participants), len(completed), slug,
        )

        self._enter(SettlementPhase.MAPPING, tournament_id)
        participant_map = build_participant_map(participants, registrations)
        self._persist(
            "update tournament participants",
            lambda: sync_participant_metadata(self.session, tournament_id, participant_map),
        )
        if self.commit_mapping:
            self._commit("update tournament participants")

        player_ids = self._involved_players(completed, participant_map)
        if not player_ids:
            outcome = SettlementOutcome(tournament_id=tournament_id, message=NO_COMPLETED_MATCHES)
            self._enter(SettlementPhase.DONE, tournament_id)
            logger.info(outcome.summary())
            return outcome

        rollback = None
        if rerun:
            self._enter(SettlementPhase.ROLLING_BACK, tournament_id)
            rollback = self._persist(
                "roll back previous settlement",
                lambda: rollback_tournament(self.session, tournament_id, season_id),
            )

        rating_state = self._load_rating_state(season_id, player_ids)
        entrants_count = max(len(rating_state), len(participant_map), len(registrations), 1)

        self._enter(SettlementPhase.REPLAYING, tournament_id)
        matches, events, skipped = self._process_matches(
            tournament_id=tournament_id,
            season_id=season_id,
            k_factor=k_factor,
            entrants_count=entrants_count,
            completed=completed,
            participant_map=participant_map,
            rating_state=rating_state,
        )

        if not matches:
            outcome = SettlementOutcome(
                tournament_id=tournament_id,
                skipped_matches=skipped,
                message=NO_VALID_MATCHES,
                rollback=rollback,
            )
            self._enter(SettlementPhase.DONE, tournament_id)
            logger.info(outcome.summary())
            return outcome

        self._enter(SettlementPhase.PERSISTING, tournament_id)
        self._persist("insert matches", lambda: self.session.add_all(matches))
        self._persist("insert rating events", lambda: self.session.add_all(events))
        self._persist("update player ratings", rating_state.write_back)

        def mark_rated() -> None:
            tournament.state = TOURNAMENT_RATED

        self._persist("update tournament state", mark_rated)

        outcome = SettlementOutcome(
            tournament_id=tournament_id,
            processed_matches=len(matches),
            processed_players=len(rating_state),
            skipped_matches=skipped,
            rollback=rollback,
            matches=matches,
        )
        self._enter(SettlementPhase.DONE, tournament_id)
        logger.info(outcome.summary())
        return outcome

    def _involved_players(
        self,
        completed: list[ProviderMatch],
        participant_map: dict[int, MappedParticipant],
    ) -> list[str]:
        """Internal ids of every mapped player in a completed match, first-seen order."""
        seen: dict[str, None] = {}
        for match in completed:
            for participant_id in (match.player1_id, match.player2_id):
                mapped = participant_map.get(participant_id)
                if mapped is not None:
                    seen.setdefault(mapped.user_id, None)
        return list(seen)

    def _load_rating_state(self, season_id: str, player_ids: list[str]) -> RatingState:
        """
        Bulk load rating rows for the involved players in one query.

        Players without a row in this season get one at the floor with no
        matches, so every involved player has state before the replay.
        """
        rows = (
            self.session.query(PlayerSeasonRating)
            .filter(
                PlayerSeasonRating.season_id == season_id,
                PlayerSeasonRating.user_id.in_(player_ids),
            )
            .all()
        )
        have = {row.user_id for row in rows}
        missing = [user_id for user_id in player_ids if user_id not in have]
        if missing:
            seeded = [
                PlayerSeasonRating(
                    user_id=user_id,
                    season_id=season_id,
                    rating_current=RATING_FLOOR,
                    matches_played=0,
                )
                for user_id in missing
            ]

            def seed() -> None:
                self.session.add_all(seeded)

            self._persist("seed player ratings", seed)
            rows.extend(seeded)
            logger.debug("Seeded %d rating rows in season %s", len(seeded), season_id)

        return RatingState(rows)

    def _process_matches(
        self,
        tournament_id: str,
        season_id: str,
        k_factor: int,
        entrants_count: int,
        completed: list[ProviderMatch],
        participant_map: dict[int, MappedParticipant],
        rating_state: RatingState,
    ) -> tuple[list[Match], list[RatingEvent], int]:
        """
        Replay completed matches in order. Pure in-memory, no DB calls.

        Returns:
            (match rows, rating event rows, skipped match count)
        """
        double_elimination = is_double_elimination(completed)
        top_rating = rating_state.top_rating()

        matches: list[Match] = []
        events: list[RatingEvent] = []
        skipped = 0

        for provider_match in completed:
            p1 = participant_map.get(provider_match.player1_id)
            p2 = participant_map.get(provider_match.player2_id)
            if p1 is None or p2 is None:
                logger.warning("Skipping match %s: unmapped participants", provider_match.id)
                skipped += 1
                continue

            if p1.user_id == p2.user_id:
                logger.warning("Skipping match %s: both sides map to %s", provider_match.id, p1.user_id)
                skipped += 1
                continue

            winner = participant_map.get(provider_match.winner_id)
            if winner is None or winner.user_id not in (p1.user_id, p2.user_id):
                logger.warning("Skipping match %s: unknown winner", provider_match.id)
                skipped += 1
                continue

            p1_state = rating_state.get(p1.user_id)
            p2_state = rating_state.get(p2.user_id)
            if p1_state is None or p2_state is None:
                logger.warning("Skipping match %s: missing rating state", provider_match.id)
                skipped += 1
                continue

            completed_at = provider_match.finished_at or utcnow()
            context = classify_match(provider_match, double_elimination)
            winner_is_p1 = winner.user_id == p1.user_id

            result = apply_elo(
                p1_state.rating,
                p2_state.rating,
                1 if winner_is_p1 else 0,
                EloContext(
                    entrants_count=entrants_count,
                    stage=context.stage,
                    score_gap=context.score_gap,
                    top_rating=top_rating,
                    base_k=k_factor,
                ),
            )

            match_row = Match(
                id=str(uuid.uuid4()),
                tournament_id=tournament_id,
                challonge_match_id=provider_match.id,
                p1_user_id=p1.user_id,
                p2_user_id=p2.user_id,
                winner_user_id=winner.user_id,
                scores_csv=provider_match.scores_csv or "",
                winner_points=result.new_rating_a if winner_is_p1 else result.new_rating_b,
                loser_points=result.new_rating_b if winner_is_p1 else result.new_rating_a,
                score_diff=context.score_gap,
                completed_at=completed_at,
            )
            matches.append(match_row)

            # delta is stored as applied (after the floor) so the event chain
            # always sums to the current rating
            for state, new_rating in ((p1_state, result.new_rating_a), (p2_state, result.new_rating_b)):
                events.append(
                    RatingEvent(
                        season_id=season_id,
                        match_id=match_row.id,
                        user_id=state.user_id,
                        rating_before=state.rating,
                        rating_after=new_rating,
                        delta=new_rating - state.rating,
                        k_factor=k_factor,
                        created_at=completed_at,
                    )
                )
                if new_rating != state.rating:
                    state.first_reached = completed_at
                state.rating = new_rating
                state.matches += 1

            top_rating = rating_state.top_rating()

        return matches, events, skipped

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, phase: SettlementPhase, tournament_id: str) -> None:
        self.phase = phase
        logger.info("Settlement of %s: %s", tournament_id, phase.value)

    def _phase_name(self) -> Optional[str]:
        return self.phase.value if self.phase else None

    def _persist(self, step: str, write: Callable[[], object]):
        """Run one write step and flush it, turning database errors into PersistenceError."""
        try:
            value = write()
            self.session.flush()
            return value
        except StaleDataError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to {step}: {exc}") from exc

    def _commit(self, step: str) -> None:
        try:
            self.session.commit()
        except StaleDataError:
            raise
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to {step}: {exc}") from exc
