"""Unit tests for standings and rating history."""

from datetime import datetime

import pytest

from boardrank.db.models import PlayerSeasonRating, Season
from boardrank.services.leaderboard import (
    get_leaderboard,
    get_player_history,
    get_player_season_stats,
)
from boardrank.services.settlement import TournamentSettlement


@pytest.fixture
def standings(db_session, season, make_user):
    """
    Five ranked players:
        bob    1200, 7 matches
        alice  1200, 5 matches
        carol  1100, reached it first
        dave   1100, reached it later
        (none) 1000
    """
    rows = [
        ("AAAAA", "alice", 1200, 5, None),
        ("BBBBB", "bob", 1200, 7, None),
        ("CCCCC", "carol", 1100, 4, datetime(2026, 2, 1)),
        ("DDDDD", "dave", 1100, 4, datetime(2026, 2, 3)),
        ("EEEEE", None, 1000, 0, None),
    ]
    for code, username, rating, matches, reached in rows:
        make_user(code, username)
        db_session.add(PlayerSeasonRating(
            user_id=code,
            season_id=season.id,
            rating_current=rating,
            matches_played=matches,
            first_reached_current_rating_at=reached,
        ))

    db_session.add(Season(id="season-0", status="finalized", start_at=datetime(2025, 1, 1)))
    db_session.add(PlayerSeasonRating(user_id="AAAAA", season_id="season-0", rating_current=1900))
    db_session.commit()


class TestLeaderboard:

    def test_ordering_and_ranks(self, db_session, standings):
        entries = get_leaderboard(db_session, "season-1")

        assert [(e.rank, e.user_id) for e in entries] == [
            (1, "BBBBB"),
            (2, "AAAAA"),
            (3, "CCCCC"),
            (4, "DDDDD"),
            (5, "EEEEE"),
        ]
        assert entries[4].username == "Unknown Player"
        assert entries[0].to_dict() == {
            "rank": 1,
            "user_id": "BBBBB",
            "username": "bob",
            "rating_current": 1200,
            "matches_played": 7,
        }

    def test_current_user_appended_outside_limit(self, db_session, standings):
        entries = get_leaderboard(db_session, "season-1", limit=2, current_user_id="DDDDD")
        assert [(e.rank, e.user_id) for e in entries] == [(1, "BBBBB"), (2, "AAAAA"), (4, "DDDDD")]

    def test_current_user_not_duplicated(self, db_session, standings):
        entries = get_leaderboard(db_session, "season-1", limit=2, current_user_id="AAAAA")
        assert [e.user_id for e in entries] == ["BBBBB", "AAAAA"]

    def test_other_seasons_excluded(self, db_session, standings):
        entries = get_leaderboard(db_session, "season-0")
        assert [(e.user_id, e.rating_current) for e in entries] == [("AAAAA", 1900)]


def test_season_stats_default_for_unranked_player(db_session, standings):
    assert get_player_season_stats(db_session, "season-1", "BBBBB") == {"rating": 1200, "matches_played": 7}
    assert get_player_season_stats(db_session, "season-1", "ZZZZZ") == {"rating": 1000, "matches_played": 0}


def test_player_history_newest_first(db_session, make_user, make_tournament, bracket):
    make_user("AAAAA", "alice")
    make_user("BBBBB", "bob")
    tournament = make_tournament(["AAAAA", "BBBBB"])
    provider = bracket.Provider(
        participants=[bracket.participant(1, "[AAAAA] alice"), bracket.participant(2, "[BBBBB] bob")],
        matches=[
            bracket.match(100, 1, 2, winner_id=1, completed_at="2026-03-01T18:00:00Z"),
            bracket.match(101, 2, 1, winner_id=2, completed_at="2026-03-01T19:00:00Z"),
        ],
    )
    TournamentSettlement(db_session, provider).settle(tournament.id)
    db_session.commit()

    history = get_player_history(db_session, "season-1", "AAAAA")

    assert [entry.result for entry in history] == ["loss", "win"]
    assert {entry.opponent_username for entry in history} == {"bob"}
    assert history[1].rating_before == 1000
    assert history[1].rating_after == 1011
    assert history[0].rating_before == 1011
    assert history[0].delta == history[0].rating_after - history[0].rating_before
    payload = history[1].to_dict()
    assert payload["tournament_name"] == tournament.name
    assert payload["completed_at"] == "2026-03-01T18:00:00"
