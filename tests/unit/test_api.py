"""
Tests for the HTTP API.

Routes run against the per-test SQLite database; the bracket provider is
replaced with the in-memory fake from conftest.
"""

import pytest
from fastapi.testclient import TestClient

from boardrank.db.models import (
    ROLE_ADMIN,
    PlayerSeasonRating,
    Tournament,
    TournamentPlayer,
    UserRole,
)
from boardrank.db.session import get_db
from boardrank.errors import ProviderAPIError
from boardrank.web.api import app, get_bracket_provider

ADMIN = {"X-Auth-User-Id": "auth-admin"}
PLAYER = {"X-Auth-User-Id": "auth-player"}


@pytest.fixture
def provider(bracket):
    return bracket.Provider(
        participants=[
            bracket.participant(1, "[AAAAA] alice"),
            bracket.participant(2, "[BBBBB] bob"),
        ],
        matches=[bracket.match(100, 1, 2, winner_id=1)],
    )


@pytest.fixture
def client(db_session, session_factory, provider):
    db_session.add(UserRole(auth_user_id="auth-admin", role=ROLE_ADMIN))
    db_session.commit()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_bracket_provider] = lambda: provider
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestAdminGuard:

    def test_missing_identity_is_401(self, client):
        response = client.post("/api/seasons/finalize")
        assert response.status_code == 401

    def test_non_admin_is_403(self, client):
        response = client.post("/api/seasons/finalize", headers=PLAYER)
        assert response.status_code == 403


class TestRate:

    def test_rate_then_reject_second_run(self, client, db_session, make_user, make_tournament):
        make_user("AAAAA", "alice")
        make_user("BBBBB", "bob")
        tournament = make_tournament(["AAAAA", "BBBBB"])

        response = client.post(f"/api/tournaments/{tournament.id}/rate", headers=ADMIN)
        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "processed_matches": 1,
            "processed_players": 2,
            "skipped_matches": 0,
        }

        rating = db_session.query(PlayerSeasonRating).filter_by(user_id="AAAAA").one()
        assert rating.rating_current == 1011

        again = client.post(f"/api/tournaments/{tournament.id}/rate", headers=ADMIN)
        assert again.status_code == 409

        rerun = client.post(f"/api/tournaments/{tournament.id}/rate", json={"rerun": True}, headers=ADMIN)
        assert rerun.status_code == 200
        assert rerun.json()["processed_matches"] == 1

    def test_unknown_tournament(self, client):
        response = client.post("/api/tournaments/missing/rate", headers=ADMIN)
        assert response.status_code == 404
        assert response.json() == {"error": "Tournament not found."}

    def test_provider_failure_reports_phase(self, client, db_session, make_tournament, provider):
        tournament = make_tournament(["AAAAA", "BBBBB"])
        provider.error = ProviderAPIError(503, "maintenance")

        response = client.post(f"/api/tournaments/{tournament.id}/rate", headers=ADMIN)

        assert response.status_code == 502
        assert response.json() == {
            "error": "Challonge API error (503): maintenance",
            "phase": "fetching",
        }


class TestTournamentAdmin:

    def test_create_tournament(self, client, db_session, season):
        response = client.post(
            "/api/tournaments",
            json={"name": "Friday Cup", "challonge_url": "https://challonge.com/fri_cup"},
            headers=ADMIN,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["challonge_slug"] == "fri_cup"
        assert db_session.get(Tournament, body["id"]).season_id == season.id

    def test_create_tournament_validation(self, client, season):
        response = client.post(
            "/api/tournaments",
            json={"name": "ab", "challonge_url": "https://challonge.com/x"},
            headers=ADMIN,
        )
        assert response.status_code == 422
        assert response.json() == {"error": "Name must be at least 3 characters."}

    def test_participant_export(self, client, db_session, make_user, make_tournament):
        make_user("BBBBB", "bob")
        make_user("AAAAA", "zed")
        tournament = make_tournament()
        for code, username in (("BBBBB", "bob"), ("AAAAA", "zed")):
            db_session.add(TournamentPlayer(
                tournament_id=tournament.id,
                user_id=code,
                challonge_display_name=f"[{code}] {username}",
            ))
        db_session.commit()

        response = client.get(f"/api/tournaments/{tournament.id}/participants", headers=ADMIN)

        assert response.status_code == 200
        assert response.text == "[BBBBB] bob\n[AAAAA] zed"
        assert response.headers["cache-control"] == "no-store"

    def test_finalize_season(self, client, db_session, season):
        response = client.post("/api/seasons/finalize", headers=ADMIN)
        assert response.json() == {"success": True, "season_id": season.id}

        again = client.post("/api/seasons/finalize", headers=ADMIN)
        assert again.status_code == 409
        assert again.json() == {"error": "No active season to finalize."}


class TestPlayerRoutes:

    def test_identity_then_register(self, client, db_session, make_tournament):
        tournament = make_tournament()

        response = client.post("/api/profile/identity", json={"username": "Alice"}, headers=PLAYER)
        assert response.status_code == 200
        profile = response.json()
        assert profile["username"] == "alice"
        assert len(profile["id"]) == 5

        rating = db_session.query(PlayerSeasonRating).filter_by(user_id=profile["id"]).one()
        assert (rating.rating_current, rating.matches_played) == (1000, 0)

        registered = client.post(f"/api/tournaments/{tournament.id}/register", headers=PLAYER)
        assert registered.json() == {"success": True}

        export = client.get(f"/api/tournaments/{tournament.id}/participants", headers=ADMIN)
        assert export.text == f"[{profile['id']}] alice"

    def test_bad_username(self, client):
        response = client.post("/api/profile/identity", json={"username": "a b"}, headers=PLAYER)
        assert response.status_code == 422

    def test_register_without_username(self, client, db_session, make_tournament):
        tournament = make_tournament()

        response = client.post(f"/api/tournaments/{tournament.id}/register", headers=PLAYER)

        assert response.status_code == 400
        assert response.json() == {"error": "Set a username before joining tournaments."}

    def test_leaderboard(self, client, db_session, season, make_user):
        make_user("AAAAA", "alice")
        db_session.add(PlayerSeasonRating(user_id="AAAAA", season_id=season.id, rating_current=1050))
        db_session.commit()

        response = client.get(f"/api/seasons/{season.id}/leaderboard")

        assert response.status_code == 200
        assert response.json() == {
            "season_id": "season-1",
            "entries": [{
                "rank": 1,
                "user_id": "AAAAA",
                "username": "alice",
                "rating_current": 1050,
                "matches_played": 0,
            }],
        }

    def test_leaderboard_unknown_season(self, client):
        response = client.get("/api/seasons/nope/leaderboard")
        assert response.status_code == 404
