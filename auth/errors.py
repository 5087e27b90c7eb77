"""
auth/errors.py -- Error taxonomy shared by the storage collaborators and AuthService.

Pattern: one closed enumeration (ErrorKind) carried on two exception types.
  StorageError -- raised by a UserDirectory / ApplicationRegistry implementation
                  for the conditions the service knows how to classify.
  AuthError    -- raised by AuthService. Callers branch on err.kind, never on
                  the message text.

Anything a collaborator raises that is not a StorageError is an "other" failure
and the service wraps it as ErrorKind.INTERNAL with the original exception
chained as __cause__.

Layer rule: stdlib only. No imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    # Storage-facing
    USER_EXISTS = "user_exists"
    APP_NOT_FOUND = "app_not_found"
    # Shared: storage raises it for unknown ids, the service re-raises it from is_admin()
    USER_NOT_FOUND = "user_not_found"
    # Service-facing
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_APPLICATION = "invalid_application"
    USER_ALREADY_EXISTS = "user_already_exists"
    INTERNAL = "internal"


class StorageError(Exception):
    """A classified condition reported by a storage collaborator."""

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(self.message)


class AuthError(Exception):
    """A classified failure of an AuthService operation.

    op is the operation-name tag (e.g. "auth.login") so log lines and error
    strings show where the failure surfaced. The lower-layer exception, if
    any, is available as __cause__.
    """

    def __init__(self, kind: ErrorKind, op: str, message: str = "") -> None:
        self.kind = kind
        self.op = op
        self.message = message or kind.value.replace("_", " ")
        super().__init__(f"{op}: {self.message}")


class HashingError(Exception):
    """bcrypt refused to hash the given secret."""


class CorruptHashError(Exception):
    """A stored password hash is not a structurally valid bcrypt hash."""


class TokenSigningError(Exception):
    """A token could not be signed (or, in decode_token, verified)."""
