"""
Session Role Resolution

Turns the role rows of an authenticated account into the coarse flags used
by every protected route. Flags are derived on each resolution and never
stored, so a grant or revocation applies on the next request.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, FrozenSet, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.user_role import UserRole

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "student"


@dataclass(frozen=True)
class SessionRoles:
    roles: FrozenSet[str]
    is_admin: bool
    is_moderator_or_above: bool

    @classmethod
    def from_roles(cls, roles: Iterable[str]) -> "SessionRoles":
        loaded = frozenset(roles)
        is_admin = "admin" in loaded
        return cls(
            # No rows means a plain student; the implied role grants nothing
            roles=loaded or frozenset({DEFAULT_ROLE}),
            is_admin=is_admin,
            is_moderator_or_above=is_admin or "moderator" in loaded,
        )

    @classmethod
    def least_privileged(cls) -> "SessionRoles":
        return cls.from_roles(())

    def to_dict(self) -> dict:
        return {
            "roles": sorted(self.roles),
            "is_admin": self.is_admin,
            "is_moderator_or_above": self.is_moderator_or_above,
        }


class SessionRoleResolver:
    """Loads role assignments for a user and derives authorization flags"""

    def __init__(self, db: Session):
        self.db = db

    def load_roles(self, user_id: str) -> Iterable[str]:
        rows = self.db.query(UserRole.role).filter(UserRole.user_id == user_id).all()
        return [row.role for row in rows]

    def resolve(self, user_id: str) -> SessionRoles:
        """
        Resolve the session roles for ``user_id``.

        A failure while loading degrades to the least-privileged state
        instead of raising: an authenticated session without details is
        preferable to one that cannot be established.
        """
        try:
            roles = self.load_roles(user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load roles for user {user_id}: {e}")
            self.db.rollback()
            return SessionRoles.least_privileged()

        return SessionRoles.from_roles(roles)


class SessionSnapshot:
    """
    Role snapshot owned by a single session.

    ``schedule_refresh`` starts an explicit background task. Readers keep
    seeing the previous snapshot until the new one is fully resolved; the
    swap is a single reference assignment.
    """

    def __init__(
        self,
        user_id: str,
        resolve: Callable[[str], SessionRoles],
        initial: Optional[SessionRoles] = None
    ):
        self.user_id = user_id
        self._resolve = resolve
        self._current = initial or SessionRoles.least_privileged()
        # Created on first refresh so it belongs to the running loop
        self._lock: Optional[asyncio.Lock] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def current(self) -> SessionRoles:
        return self._current

    async def refresh(self) -> SessionRoles:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            # Blocking DB access runs off the event loop
            roles = await asyncio.to_thread(self._resolve, self.user_id)
            self._current = roles
        return roles

    def schedule_refresh(self) -> asyncio.Task:
        """Start a refresh without waiting for it; returns the task"""
        self._task = asyncio.create_task(self.refresh())
        return self._task

    async def wait(self) -> SessionRoles:
        """Wait for a pending refresh, if any, and return the snapshot"""
        if self._task is not None:
            await self._task
        return self._current

