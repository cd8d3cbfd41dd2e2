from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

UserRole = Literal["admin", "teacher", "student"]


@dataclass(frozen=True, slots=True)
class User:
    """The signed-in identity, as handed to the cache by the session layer.

    Roles are advisory: they decide which views the cache fills (admins
    see every course) but nothing here enforces them.
    """

    id: int
    username: str
    role: UserRole
    email: str = ""
    name: str = ""
    created_at: str | None = None
    last_login: str | None = None
