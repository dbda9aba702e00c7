"""
Error taxonomy for Boardrank.

Every fatal path raises a BoardrankError subclass carrying a human-readable
message and an HTTP-equivalent status code. The web layer turns these into
JSON responses; scripts print the message and exit non-zero.

Recoverable conditions (unmapped participants, malformed score strings)
never raise - they are logged and counted by the settlement run.
"""

from typing import Optional


class BoardrankError(Exception):
    """Base exception for all Boardrank errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message}


class ConfigurationError(BoardrankError):
    """Raised when required configuration (e.g. the Challonge API key) is missing."""

    status_code = 500


class ValidationError(BoardrankError):
    """Raised when caller input cannot be used as given."""

    status_code = 400


class NotFoundError(BoardrankError):
    """Raised when a tournament, season or user does not exist."""

    status_code = 404


class TournamentStateError(BoardrankError):
    """Raised when an entity is in the wrong state for the requested operation."""

    status_code = 409


# ========== Settlement Exceptions ==========


class SettlementError(BoardrankError):
    """
    Base for errors that abort a settlement run.

    The orchestrator stamps the phase it was in when the error escaped,
    so logs and API responses say how far the run got.
    """

    phase: Optional[str] = None


class ProviderAPIError(SettlementError):
    """Raised when the bracket provider answers with a non-success status."""

    status_code = 502

    def __init__(self, status: int, body: str):
        super().__init__(f"Challonge API error ({status}): {body}")
        self.upstream_status = status
        self.upstream_body = body


class PersistenceError(SettlementError):
    """Raised when a store write fails during a settlement or rollback."""

    status_code = 500


class ConcurrentSettlementError(SettlementError):
    """Raised when another settlement touched the same season's rating rows."""

    status_code = 409
