"""
Boardrank HTTP API.

Identity comes from the auth proxy in front of the app, which forwards the
authenticated user's id in the X-Auth-User-Id header. Admin routes check
that id against user_roles.

Run locally:
    uvicorn boardrank.web.api:app --reload
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from boardrank.bracket.client import BracketProvider, ChallongeClient
from boardrank.config import settings
from boardrank.db.models import Season, Tournament
from boardrank.db.session import get_db
from boardrank.errors import BoardrankError, NotFoundError
from boardrank.players.identity import ensure_profile, is_admin, set_username
from boardrank.services.leaderboard import get_leaderboard, get_player_history
from boardrank.services.seasons import (
    create_tournament,
    ensure_season_rating,
    finalize_active_season,
    get_active_season,
    participant_export_lines,
    register_player,
)
from boardrank.services.settlement import TournamentSettlement
from boardrank.tasks.locks import season_settlement_lock

logger = logging.getLogger(__name__)

app = FastAPI(title="Boardrank")


class RateRequest(BaseModel):
    rerun: bool = False


class CreateTournamentRequest(BaseModel):
    name: Optional[str] = None
    challonge_url: Optional[str] = None


class IdentityRequest(BaseModel):
    username: Optional[str] = None


@app.exception_handler(BoardrankError)
async def boardrank_error_handler(request: Request, exc: BoardrankError):
    """Every domain error becomes {"error": message} with its status code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    payload = exc.to_dict()
    phase = getattr(exc, "phase", None)
    if phase:
        payload["phase"] = phase
    return JSONResponse(payload, status_code=exc.status_code)


# =============================================================================
# Dependencies
# =============================================================================

def current_auth_user(x_auth_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_auth_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_auth_user_id


def require_admin(
    auth_user_id: str = Depends(current_auth_user),
    db: Session = Depends(get_db),
) -> str:
    if not is_admin(db, auth_user_id):
        raise HTTPException(status_code=403, detail="Forbidden")
    return auth_user_id


def get_bracket_provider() -> BracketProvider:
    """Challonge client from settings. Raises ConfigurationError without an API key."""
    return ChallongeClient.from_settings()


# =============================================================================
# Admin routes
# =============================================================================

@app.post("/api/tournaments/{tournament_id}/rate")
def rate_tournament(
    tournament_id: str,
    body: Optional[RateRequest] = None,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
    provider: BracketProvider = Depends(get_bracket_provider),
):
    """
    Settle a tournament's ratings from its Challonge bracket.

    Sync handler: provider calls block, so FastAPI runs this in its threadpool.
    """
    rerun = body.rerun if body else False
    tournament = db.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError("Tournament not found.")

    engine = db.get_bind()
    with season_settlement_lock(
        engine, tournament.season_id, settings.settlement_lock_timeout_seconds
    ):
        try:
            outcome = TournamentSettlement(db, provider).settle(tournament_id, rerun=rerun)
            db.commit()
        except Exception:
            db.rollback()
            raise

    return outcome.to_dict()


@app.post("/api/tournaments")
async def api_create_tournament(
    body: CreateTournamentRequest,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    tournament = create_tournament(db, body.name, body.challonge_url)
    db.commit()
    return {"success": True, "id": tournament.id, "challonge_slug": tournament.challonge_slug}


@app.get("/api/tournaments/{tournament_id}/participants", response_class=PlainTextResponse)
async def api_participant_export(
    tournament_id: str,
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Registered players as "[CODE] username" lines for Challonge's bulk add."""
    lines = participant_export_lines(db, tournament_id)
    return PlainTextResponse("\n".join(lines), headers={"Cache-Control": "no-store"})


@app.post("/api/seasons/finalize")
async def api_finalize_season(
    _admin: str = Depends(require_admin),
    db: Session = Depends(get_db),
):
    season = finalize_active_season(db)
    db.commit()
    return {"success": True, "season_id": season.id}


# =============================================================================
# Player routes
# =============================================================================

@app.post("/api/profile/identity")
async def api_set_identity(
    body: IdentityRequest,
    auth_user_id: str = Depends(current_auth_user),
    db: Session = Depends(get_db),
):
    """Create the caller's profile if needed and set their username."""
    profile = ensure_profile(db, auth_user_id)
    set_username(db, profile.id, body.username or "")

    season = get_active_season(db)
    if season is not None:
        ensure_season_rating(db, profile.id, season.id)

    db.commit()
    return {"id": profile.id, "username": profile.username}


@app.post("/api/tournaments/{tournament_id}/register")
async def api_register(
    tournament_id: str,
    auth_user_id: str = Depends(current_auth_user),
    db: Session = Depends(get_db),
):
    profile = ensure_profile(db, auth_user_id)
    register_player(db, tournament_id, profile.id)
    db.commit()
    return {"success": True}


@app.get("/api/seasons/{season_id}/leaderboard")
async def api_leaderboard(
    season_id: str,
    db: Session = Depends(get_db),
    limit: int = Query(50, ge=1, le=500, description="Number of ranked players to return"),
    user_id: Optional[str] = Query(None, description="Player to append if outside the limit"),
):
    if db.get(Season, season_id) is None:
        raise NotFoundError("Season not found.")
    entries = get_leaderboard(db, season_id, limit=limit, current_user_id=user_id)
    return {"season_id": season_id, "entries": [entry.to_dict() for entry in entries]}


@app.get("/api/seasons/{season_id}/players/{user_id}/history")
async def api_player_history(
    season_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    limit: int = Query(100, ge=1, le=500),
):
    entries = get_player_history(db, season_id, user_id, limit=limit)
    return {"season_id": season_id, "user_id": user_id, "entries": [entry.to_dict() for entry in entries]}


# Only for debugging
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("boardrank.web.api:app", host=settings.api_host, port=settings.api_port, reload=True)
