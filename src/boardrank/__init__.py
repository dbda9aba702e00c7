"""
Boardrank - Seasonal Rating Service for Bracket Tournaments

Players register for tournaments, admins import completed brackets from
Challonge, and every completed match is converted into rating changes
against per-season player state.

Main components:
- elo: Rating function and match classification
- bracket: Challonge API client and record normalisation
- players: Public player codes and profile records
- services: Settlement, rollback, registration and leaderboard logic
- db: SQLAlchemy models and session management
- web: FastAPI admin API
- tasks: Advisory locking for single-settlement-per-season
"""

__version__ = "1.0.0"
