"""Unit tests for tournament rollback."""

from datetime import datetime

import pytest

from boardrank.db.models import Match, PlayerSeasonRating, RatingEvent
from boardrank.services.rollback import rollback_tournament
from boardrank.services.settlement import TournamentSettlement


def _ratings(session):
    return {
        row.user_id: (row.rating_current, row.matches_played)
        for row in session.query(PlayerSeasonRating).all()
    }


@pytest.fixture
def settle(db_session, make_user, bracket):
    """Settle a tournament from (p1, p2, winner) participant-id triples."""
    make_user("AAAAA", "alice")
    make_user("BBBBB", "bob")
    db_session.commit()
    participants = [
        bracket.participant(1, "[AAAAA] alice"),
        bracket.participant(2, "[BBBBB] bob"),
    ]

    def _settle(tournament, games, hour=18):
        matches = [
            bracket.match(
                1000 * hour + index,
                p1,
                p2,
                winner_id=winner,
                completed_at=f"2026-03-01T{hour:02d}:{index:02d}:00Z",
            )
            for index, (p1, p2, winner) in enumerate(games)
        ]
        outcome = TournamentSettlement(db_session, bracket.Provider(participants, matches)).settle(tournament.id)
        db_session.commit()
        return outcome

    return _settle


def test_restores_rating_before_first_match(db_session, make_tournament, settle):
    tournament = make_tournament(["AAAAA", "BBBBB"])
    settle(tournament, [(1, 2, 1), (1, 2, 1), (2, 1, 1)])
    assert _ratings(db_session)["AAAAA"][0] > 1000

    result = rollback_tournament(db_session, tournament.id, "season-1")
    db_session.commit()

    assert result.matches_deleted == 3
    assert result.events_deleted == 6
    assert result.players_restored == 2
    assert _ratings(db_session) == {"AAAAA": (1000, 0), "BBBBB": (1000, 0)}
    assert db_session.query(Match).count() == 0
    assert db_session.query(RatingEvent).count() == 0


def test_second_rollback_is_noop(db_session, make_tournament, settle):
    tournament = make_tournament(["AAAAA", "BBBBB"])
    settle(tournament, [(1, 2, 1)])

    rollback_tournament(db_session, tournament.id, "season-1")
    db_session.commit()
    again = rollback_tournament(db_session, tournament.id, "season-1")

    assert again.is_noop
    assert again.players_restored == 0
    assert _ratings(db_session) == {"AAAAA": (1000, 0), "BBBBB": (1000, 0)}


def test_unsettled_tournament_is_noop(db_session, make_tournament):
    tournament = make_tournament(["AAAAA"])

    result = rollback_tournament(db_session, tournament.id, "season-1")

    assert result.is_noop
    assert result.summary() == "Rollback: 0 matches, 0 events deleted, 0 players restored"


def test_earlier_tournament_left_intact(db_session, make_tournament, settle):
    first = make_tournament(["AAAAA", "BBBBB"], slug="first")
    second = make_tournament(["AAAAA", "BBBBB"], slug="second")
    settle(first, [(1, 2, 1)], hour=18)
    after_first = _ratings(db_session)
    settle(second, [(1, 2, 1), (1, 2, 2)], hour=20)

    rollback_tournament(db_session, second.id, "season-1")
    db_session.commit()

    assert _ratings(db_session) == after_first
    assert db_session.query(Match).filter_by(tournament_id=first.id).count() == 1
    assert db_session.query(RatingEvent).count() == 2


def test_match_count_never_negative(db_session, make_tournament, settle):
    tournament = make_tournament(["AAAAA", "BBBBB"])
    settle(tournament, [(1, 2, 1), (1, 2, 2)])
    row = db_session.query(PlayerSeasonRating).filter_by(user_id="AAAAA").one()
    row.matches_played = 1
    db_session.commit()

    rollback_tournament(db_session, tournament.id, "season-1")

    assert _ratings(db_session)["AAAAA"] == (1000, 0)


def test_first_reached_timestamp_is_kept(db_session, make_tournament, settle):
    tournament = make_tournament(["AAAAA", "BBBBB"])
    settle(tournament, [(1, 2, 1)])

    rollback_tournament(db_session, tournament.id, "season-1")
    db_session.commit()

    alice = db_session.query(PlayerSeasonRating).filter_by(user_id="AAAAA").one()
    assert alice.rating_current == 1000
    assert alice.first_reached_current_rating_at == datetime(2026, 3, 1, 18, 0)
