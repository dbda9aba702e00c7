"""Database advisory lock helpers so only one settlement runs per season."""

from __future__ import annotations

import hashlib
import logging
import time
from contextlib import ExitStack, contextmanager
from typing import Generator

from sqlalchemy import text
from sqlalchemy.engine import Engine

from boardrank.errors import ConcurrentSettlementError

logger = logging.getLogger(__name__)


def advisory_lock_key(name: str) -> int:
    """Return a deterministic signed 64-bit lock key from a lock name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def settlement_lock_name(season_id: str) -> str:
    return f"boardrank:settlement:{season_id}"


@contextmanager
def postgres_advisory_lock(
    engine: Engine,
    *,
    key: int,
    timeout_seconds: float = 0.0,
    poll_interval_seconds: float = 1.0,
) -> Generator[bool, None, None]:
    """
    Acquire a PostgreSQL advisory lock for the life of this context.

    The lock is session-level on its own connection, so commits made by the
    work inside the context do not release it.

    Yields:
        True if lock acquired.

    Raises:
        TimeoutError: if lock cannot be acquired before timeout.
    """
    connection = engine.connect()
    acquired = False
    try:
        deadline = time.monotonic() + max(timeout_seconds, 0.0)
        while True:
            acquired = bool(
                connection.execute(
                    text("SELECT pg_try_advisory_lock(:key)"),
                    {"key": key},
                ).scalar()
            )
            if acquired:
                break
            if timeout_seconds <= 0:
                break
            if time.monotonic() >= deadline:
                break
            time.sleep(max(poll_interval_seconds, 0.05))

        if not acquired:
            raise TimeoutError(f"Could not acquire advisory lock key={key}")

        yield True
    finally:
        if acquired:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"),
                {"key": key},
            )
        connection.close()


@contextmanager
def season_settlement_lock(
    engine: Engine,
    season_id: str,
    timeout_seconds: float = 0.0,
) -> Generator[bool, None, None]:
    """
    Serialise settlements of one season.

    Only PostgreSQL has advisory locks; on any other backend this yields
    False and relies on the rating rows' version counter alone.

    Raises:
        ConcurrentSettlementError: Another settlement holds the lock
    """
    if engine.dialect.name != "postgresql":
        logger.debug("No advisory locks on %s, settling season %s unlocked", engine.dialect.name, season_id)
        yield False
        return

    key = advisory_lock_key(settlement_lock_name(season_id))
    with ExitStack() as stack:
        try:
            stack.enter_context(
                postgres_advisory_lock(engine, key=key, timeout_seconds=timeout_seconds)
            )
        except TimeoutError as exc:
            raise ConcurrentSettlementError(
                f"Another settlement is already running for season {season_id}."
            ) from exc
        yield True
