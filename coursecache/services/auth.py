from __future__ import annotations

import logging

from coursecache.core.errors import UnauthenticatedError
from coursecache.models.user import User, UserRole

logger = logging.getLogger(__name__)


class AuthState:
    """Who is signed in, as far as the cache is concerned.

    The login/logout lifecycle lives elsewhere and reports here through
    sign_in()/sign_out().  Stores read it to scope progress to the current
    user and to decide which course views to fill.
    """

    def __init__(self, user: User | None = None) -> None:
        self.current_user = user

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    @property
    def role(self) -> UserRole | None:
        return self.current_user.role if self.current_user else None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"

    @property
    def is_student(self) -> bool:
        return self.role == "student"

    @property
    def user_id(self) -> int | None:
        return self.current_user.id if self.current_user else None

    def require_user_id(self) -> int:
        if self.current_user is None:
            raise UnauthenticatedError()
        return self.current_user.id

    def sign_in(self, user: User) -> None:
        self.current_user = user
        logger.info("Signed in user_id=%d role=%s", user.id, user.role)

    def sign_out(self) -> None:
        if self.current_user is not None:
            logger.info("Signed out user_id=%d", self.current_user.id)
        self.current_user = None
