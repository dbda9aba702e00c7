"""
Player profile management.

Maps identity-provider users onto player profiles. A profile's id is its
public code, allocated on first contact; collisions on the random code are
retried a bounded number of times.
"""

import logging
import re
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from boardrank.db.models import ROLE_ADMIN, User, UserRole
from boardrank.errors import BoardrankError, NotFoundError, TournamentStateError, ValidationError
from boardrank.players.codes import generate_public_id

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-z0-9_]{3,20}$")
USERNAME_REQUIREMENTS = "Username must be 3-20 characters (lowercase letters, numbers, underscores)."

MAX_ID_ATTEMPTS = 20


def find_profile(session: Session, auth_user_id: str) -> Optional[User]:
    return session.query(User).filter(User.auth_user_id == auth_user_id).first()


def ensure_profile(
    session: Session,
    auth_user_id: str,
    id_factory: Callable[[], str] = generate_public_id,
) -> User:
    """
    Return the profile for an identity-provider user, creating it if needed.

    Each attempt inserts inside a savepoint. A unique violation means either
    the random code is taken (try another) or a concurrent request created
    the profile first (return that one).

    Raises:
        BoardrankError: If no free code was found after MAX_ID_ATTEMPTS tries
    """
    existing = find_profile(session, auth_user_id)
    if existing:
        return existing

    for attempt in range(MAX_ID_ATTEMPTS):
        candidate = id_factory()
        try:
            with session.begin_nested():
                user = User(id=candidate, auth_user_id=auth_user_id)
                session.add(user)
                session.flush()
            return user
        except IntegrityError:
            logger.debug("Public id %s collided (attempt %d)", candidate, attempt + 1)
            profile = find_profile(session, auth_user_id)
            if profile:
                return profile

    raise BoardrankError("Could not assign player id.")


def set_username(session: Session, user_id: str, username: str) -> User:
    """
    Validate and store a username. Input is lower-cased first.

    Raises:
        ValidationError: If the username doesn't match USERNAME_PATTERN (422)
        NotFoundError: If the user doesn't exist
        TournamentStateError: If another user already has the username
    """
    username = (username or "").strip().lower()
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(USERNAME_REQUIREMENTS, status_code=422)

    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("Profile not found.")

    taken = (
        session.query(User)
        .filter(User.username == username, User.id != user_id)
        .first()
    )
    if taken:
        raise TournamentStateError("Username already taken.")

    user.username = username
    session.flush()
    return user


def get_roles(session: Session, auth_user_id: str) -> set[str]:
    rows = session.query(UserRole.role).filter(UserRole.auth_user_id == auth_user_id).all()
    return {row.role for row in rows}


def is_admin(session: Session, auth_user_id: str) -> bool:
    return ROLE_ADMIN in get_roles(session, auth_user_id)
