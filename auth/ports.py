"""
auth/ports.py -- Collaborator contracts consumed by AuthService.

Pattern: structural typing (typing.Protocol). Any object with these async
methods satisfies the contract -- auth/store.SqlStore in production, small
in-memory doubles in tests. AuthService imports only this module, never a
concrete store.

Classified failures are raised as auth.errors.StorageError with the kind
listed per method. Anything else a method raises is treated as an
unexpected failure.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import Application, User


class UserDirectory(Protocol):
    async def save_user(self, email: str, pass_hash: bytes) -> int:
        """Persist a new user and return its id. Raises StorageError(USER_EXISTS)."""
        ...

    async def find_user_by_email(self, email: str) -> User:
        """Raises StorageError(USER_NOT_FOUND)."""
        ...

    async def is_admin(self, user_id: int) -> bool:
        """Raises StorageError(USER_NOT_FOUND)."""
        ...


class ApplicationRegistry(Protocol):
    async def find_application(self, app_id: int) -> Application:
        """Raises StorageError(APP_NOT_FOUND)."""
        ...
