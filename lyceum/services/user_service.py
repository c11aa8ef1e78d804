"""
User management: accounts and their fixed role sets.
"""

import logging
import threading
from typing import Iterable, Optional

from ..core.authorization import Identity
from ..core.entities import User
from ..core.enums import Action, Role
from ..core.exceptions import ValidationError
from ..persistence.repositories import RepositoryRegistry
from .access_service import AccessService, require_entity


logger = logging.getLogger(__name__)


class UserService:
    """Creates and looks up users. Roles are assigned once, at creation."""

    def __init__(self, repositories: RepositoryRegistry, access: AccessService):
        self._repos = repositories
        self._access = access
        self._lock = threading.RLock()

    def create_user(self, actor: Optional[Identity], username: str, roles: Iterable[Role],
                    display_name: str = "") -> User:
        """Create a user. Only admins manage users."""
        self._access.require(actor, Action.MANAGE_USERS)
        return self._insert(username, roles, display_name)

    def ensure_user(self, username: str, roles: Iterable[Role], display_name: str = "") -> User:
        """Idempotent seeding step: return the existing user or create it."""
        with self._lock:
            existing = self._repos.users.find_by_username(username)
            if existing is not None:
                return existing
            return self._insert(username, roles, display_name)

    def _insert(self, username: str, roles: Iterable[Role], display_name: str) -> User:
        with self._lock:
            user = User(username, roles, display_name)
            if self._repos.users.find_by_username(user.username) is not None:
                raise ValidationError("username", f"'{user.username}' is already taken")
            self._repos.users.save(user)
        logger.info("Created user %s with roles %s", user.username,
                    ",".join(sorted(role.value for role in user.roles)))
        return user

    def find_by_username(self, username: str) -> Optional[User]:
        return self._repos.users.find_by_username(username)

    def get_user(self, actor: Optional[Identity], user_id: str) -> User:
        """Read a user record: one's own, or any as admin."""
        self._access.require(actor, Action.VIEW_OWN_RECORD, owner_id=user_id)
        return require_entity(self._repos.users, user_id, "user")
