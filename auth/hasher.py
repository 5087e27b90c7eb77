"""
auth/hasher.py -- bcrypt password hashing.

Security design decisions:
  bcrypt directly (no passlib wrapper). A fresh salt per hash() call, and a
  tunable work factor (rounds) so brute-forcing a leaked table stays expensive.
  checkpw() compares in constant time.

  72-byte limit: bcrypt only looks at the first 72 bytes of a secret, and
  silently truncating would let two different passwords share a hash. hash()
  refuses longer input with HashingError (an internal failure for the caller).
  verify() answers False for a longer candidate, since no hash produced by
  hash() can match it. The same goes for a string with no UTF-8 encoding
  (a lone surrogate): hash() raises HashingError, verify() answers False.

  Corrupt hashes: checkpw() raises ValueError when the stored value is not a
  bcrypt hash at all. That is a data problem, not a wrong password, so it is
  raised as CorruptHashError instead of being folded into False.

  Timing equalization: waste_time() runs a full verify against a dummy
  hash computed once at construction. AuthService calls it when an email is
  unknown so the response time does not reveal whether the email exists.
"""

from __future__ import annotations

import bcrypt

from auth.errors import CorruptHashError, HashingError

DEFAULT_ROUNDS = 10

_MAX_SECRET_BYTES = 72


class PasswordHasher:
    """Stateless bcrypt hasher. Safe to share between concurrent callers."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds
        self._dummy_hash = self.hash("sso_timing_dummy")

    def hash(self, secret: str) -> bytes:
        """Return a salted bcrypt hash of secret."""
        try:
            raw = secret.encode("utf-8")
        except UnicodeEncodeError as err:
            raise HashingError("secret is not encodable as UTF-8") from err
        if len(raw) > _MAX_SECRET_BYTES:
            raise HashingError(f"secret is {len(raw)} bytes; bcrypt accepts at most {_MAX_SECRET_BYTES}")
        try:
            return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds))
        except ValueError as err:
            raise HashingError(str(err)) from err

    def verify(self, hashed: bytes, candidate: str) -> bool:
        """Return True if candidate matches hashed.

        Raises CorruptHashError if hashed is not a valid bcrypt hash.
        """
        try:
            raw = candidate.encode("utf-8")
        except UnicodeEncodeError:
            raw = None
        if raw is None or len(raw) > _MAX_SECRET_BYTES:
            # hash() refuses such input, so nothing can match. Still pay the
            # bcrypt cost so these inputs are not a timing oracle.
            bcrypt.checkpw(b"x" if raw is None else raw[:_MAX_SECRET_BYTES], self._dummy_hash)
            return False
        try:
            return bcrypt.checkpw(raw, hashed)
        except ValueError as err:
            raise CorruptHashError(str(err)) from err

    def waste_time(self, candidate: str) -> None:
        """Spend one verify's worth of CPU against the dummy hash."""
        self.verify(self._dummy_hash, candidate)
