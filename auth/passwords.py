"""
auth/passwords.py -- Password policy and bcrypt hashing.

Security design decisions:
  bcrypt directly, no passlib wrapper. passlib's internal wrap-bug detection
  builds a password longer than 72 bytes, which bcrypt 4.x rejects. Inputs are
  truncated to 72 bytes here before hashing and verifying, so the two sides
  always agree on what was hashed.

  The work factor is configurable (BCRYPT_ROUNDS, default 12 -- roughly 100ms
  per hash on modern hardware). Tests drop it to bcrypt's minimum of 4.

  verify_dummy() enables timing equalization in AuthService.login() so
  response time does not reveal whether an email is registered [C1].

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import bcrypt

from auth.errors import CredentialMismatch, WeakCredential

_BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class CredentialHasher:
    """One-way password hashing with a minimum-length policy.

    Usage:
        hasher = CredentialHasher(min_length=8, rounds=12)
        digest = hasher.hash("correct horse")
        hasher.verify(digest, "correct horse")   # raises CredentialMismatch on failure
    """

    def __init__(self, min_length: int = 8, rounds: int = 12) -> None:
        self.min_length = min_length
        self.rounds = rounds
        # Computed once so the first unknown-email login is not measurably
        # slower than later ones.
        self._dummy_hash = bcrypt.hashpw(_encode("dadmail_timing_dummy"), bcrypt.gensalt(rounds=rounds))

    def check_policy(self, password: str) -> None:
        """Raise WeakCredential if the password is shorter than min_length characters."""
        if len(password) < self.min_length:
            raise WeakCredential(f"Password must be at least {self.min_length} characters long.")

    def hash(self, password: str) -> str:
        """Return a salted bcrypt digest. The salt is embedded in the output."""
        self.check_policy(password)
        return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, digest: str, password: str) -> None:
        """Raise CredentialMismatch unless password matches digest.

        A malformed digest (bcrypt raises ValueError) is reported as a
        mismatch, not as an internal error.
        """
        try:
            ok = bcrypt.checkpw(_encode(password), digest.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise CredentialMismatch() from exc
        if not ok:
            raise CredentialMismatch()

    def verify_dummy(self, password: str) -> None:
        """Spend one bcrypt verification without a real account [C1]."""
        bcrypt.checkpw(_encode(password), self._dummy_hash)
