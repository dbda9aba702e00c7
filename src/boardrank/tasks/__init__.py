"""Locking helpers for settlement entry points."""

from boardrank.tasks.locks import (
    advisory_lock_key,
    postgres_advisory_lock,
    season_settlement_lock,
    settlement_lock_name,
)

__all__ = [
    "advisory_lock_key",
    "postgres_advisory_lock",
    "season_settlement_lock",
    "settlement_lock_name",
]
