"""Unit tests for auth/passwords.py -- CredentialHasher.

Covers:
- hash/verify succeeds for passwords at or above the minimum length
- hash rejects short passwords with WeakCredential
- verify raises CredentialMismatch for wrong passwords and malformed digests
- per-call salt: two hashes of the same password differ
"""

import pytest

from auth.errors import CredentialMismatch, WeakCredential
from auth.passwords import CredentialHasher


@pytest.mark.parametrize("password", ["password", "password1", "ünïcødé-passwörd", "x" * 100])
def test_verify_accepts_hash_of_same_password(hasher: CredentialHasher, password: str) -> None:
    digest = hasher.hash(password)
    hasher.verify(digest, password)  # no exception


@pytest.mark.parametrize("password", ["", "a", "1234567"])
def test_hash_rejects_short_password(hasher: CredentialHasher, password: str) -> None:
    with pytest.raises(WeakCredential):
        hasher.hash(password)


def test_min_length_counts_characters_not_bytes() -> None:
    """Eight multi-byte characters satisfy an eight-character minimum."""
    hasher = CredentialHasher(min_length=8, rounds=4)
    hasher.verify(hasher.hash("éééééééé"), "éééééééé")


def test_verify_rejects_wrong_password(hasher: CredentialHasher) -> None:
    digest = hasher.hash("password1")
    with pytest.raises(CredentialMismatch):
        hasher.verify(digest, "password2")


def test_verify_rejects_malformed_digest(hasher: CredentialHasher) -> None:
    with pytest.raises(CredentialMismatch):
        hasher.verify("not-a-bcrypt-digest", "password1")


def test_salt_differs_per_call(hasher: CredentialHasher) -> None:
    assert hasher.hash("password1") != hasher.hash("password1")


def test_configured_rounds_embedded_in_digest() -> None:
    hasher = CredentialHasher(rounds=5)
    assert hasher.hash("password1").startswith("$2b$05$")


def test_verify_dummy_never_raises(hasher: CredentialHasher) -> None:
    hasher.verify_dummy("anything at all")
