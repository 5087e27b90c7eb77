"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores build these from
rows; the service reads them and never mutates them, hence frozen=True.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class User:
    """A registered identity.

    email is unique and compared case-sensitively, exactly as stored.
    pass_hash is the opaque bcrypt hash; it is excluded from repr so a User
    can be logged without leaking it.

    The admin flag is not part of this record. The directory answers it
    separately via is_admin(user_id).
    """

    id: int
    email: str
    pass_hash: bytes = field(repr=False)


@dataclass(frozen=True)
class Application:
    """A client application that users log in to.

    secret is the HS256 key for every token issued for this application.
    """

    id: int
    name: str
    secret: str = field(repr=False)
