"""Unit tests for auth/hasher.py -- bcrypt hashing and verification.

Covers:
- verify(hash(p), p) is True; a different candidate is False
- hashes are salted (same secret, different hash)
- the configured work factor ends up in the hash
- a corrupt stored hash raises CorruptHashError, not False
- secrets over 72 bytes: hash() refuses, verify() answers False
- secrets with no UTF-8 encoding: hash() refuses, verify() answers False
"""

import pytest

from auth.errors import CorruptHashError, HashingError
from auth.hasher import PasswordHasher


class TestRoundTrip:
    @pytest.mark.parametrize("secret", ["pw123456", "", "ünïcødé-pässwörd", "x" * 72])
    def test_verify_accepts_original(self, hasher: PasswordHasher, secret: str) -> None:
        assert hasher.verify(hasher.hash(secret), secret) is True

    @pytest.mark.parametrize("candidate", ["pw12345", "PW123456", "pw123456 ", ""])
    def test_verify_rejects_other_secret(self, hasher: PasswordHasher, candidate: str) -> None:
        assert hasher.verify(hasher.hash("pw123456"), candidate) is False

    def test_hashes_are_salted(self, hasher: PasswordHasher) -> None:
        """Two hashes of the same secret differ but both verify."""
        first, second = hasher.hash("same"), hasher.hash("same")
        assert first != second
        assert hasher.verify(first, "same") and hasher.verify(second, "same")

    def test_hash_is_bytes_with_work_factor(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("pw")
        assert isinstance(hashed, bytes)
        assert hashed.startswith(b"$2b$04$")


class TestFailureModes:
    @pytest.mark.parametrize("stored", [b"not-a-bcrypt-hash", b""])
    def test_corrupt_hash_raises(self, hasher: PasswordHasher, stored: bytes) -> None:
        """A structurally invalid stored hash is a data error, distinguishable from a mismatch."""
        with pytest.raises(CorruptHashError):
            hasher.verify(stored, "pw")

    def test_hash_refuses_secret_over_72_bytes(self, hasher: PasswordHasher) -> None:
        with pytest.raises(HashingError):
            hasher.hash("x" * 73)

    def test_verify_long_candidate_is_mismatch(self, hasher: PasswordHasher) -> None:
        """A 73-byte candidate can never match: hash() would have refused to produce it."""
        stored = hasher.hash("x" * 72)
        assert hasher.verify(stored, "x" * 73) is False

    def test_hash_refuses_unencodable_secret(self, hasher: PasswordHasher) -> None:
        with pytest.raises(HashingError):
            hasher.hash("\ud800")

    def test_verify_unencodable_candidate_is_mismatch(self, hasher: PasswordHasher) -> None:
        assert hasher.verify(hasher.hash("pw"), "\ud800") is False
        assert hasher.waste_time("\ud800") is None

    def test_waste_time_returns_none(self, hasher: PasswordHasher) -> None:
        assert hasher.waste_time("anything") is None

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_rounds_out_of_range(self, rounds: int) -> None:
        with pytest.raises(ValueError):
            PasswordHasher(rounds=rounds)
