"""
security/password_hasher.py — Credential hashing with legacy migration.

Two credential families are understood:

  ARGON2  "$argon2id$v=19$m=...,t=...,p=...$<salt>$<hash>"   (current)
  BCRYPT  "$2a$" / "$2b$" / "$2y$" ...                         (legacy)

New credentials are always Argon2id. A bcrypt credential that verifies is
reported with needs_rehash=True; the caller re-hashes the same plaintext and
stores the result, which migrates the account without a password reset.
bcrypt only ever read the first 72 bytes of a password, so verification
compares that same prefix.

The family is decided in exactly one place, parse(). Adding a third family
means a new HashAlgorithm member and a new branch in verify().
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass

import bcrypt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError


class HashAlgorithm(enum.Enum):
    ARGON2 = "argon2"
    BCRYPT = "bcrypt"


class MalformedCredentialError(ValueError):
    """The stored credential cannot be parsed. Never raised for a wrong password."""


@dataclass(frozen=True)
class Verdict:
    valid: bool
    needs_rehash: bool


_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
_BCRYPT_MAX_BYTES = 72
_ARGON2_PREFIX = "$argon2"

_REJECTED = Verdict(valid=False, needs_rehash=False)


def parse(credential: str) -> HashAlgorithm:
    """Decodes the algorithm tag of a stored credential."""
    if credential.startswith(_ARGON2_PREFIX):
        return HashAlgorithm.ARGON2
    if credential.startswith(_BCRYPT_PREFIXES):
        return HashAlgorithm.BCRYPT
    raise MalformedCredentialError("Stored credential has an unrecognised format.")


class CredentialHasher:
    """
    Hashes new passwords with Argon2id and verifies Argon2id or bcrypt.

    Cost parameters come from config (ARGON2_*). memory_cost is in KiB.
    """

    def __init__(
            self,
            memory_cost: int,
            time_cost: int,
            parallelism: int,
    ) -> None:
        self._argon2 = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )
        # Same cost parameters as real credentials, matches no password.
        self._dummy = self._argon2.hash(secrets.token_urlsafe(32))

    def hash(self, plaintext: str) -> str:
        return self._argon2.hash(plaintext)

    def verify(self, plaintext: str, credential: str) -> Verdict:
        algorithm = parse(credential)

        if algorithm is HashAlgorithm.BCRYPT:
            try:
                matched = bcrypt.checkpw(
                    plaintext.encode("utf-8")[:_BCRYPT_MAX_BYTES],
                    credential.encode("utf-8"),
                )
            except ValueError as exc:
                raise MalformedCredentialError("Stored bcrypt credential is corrupt.") from exc
            return Verdict(valid=True, needs_rehash=True) if matched else _REJECTED

        try:
            self._argon2.verify(credential, plaintext)
        except VerifyMismatchError:
            return _REJECTED
        except (InvalidHashError, VerificationError) as exc:
            # Anything but a plain mismatch means the stored string did not decode.
            raise MalformedCredentialError("Stored argon2 credential is corrupt.") from exc
        return Verdict(valid=True, needs_rehash=False)

    def verify_dummy(self, plaintext: str) -> Verdict:
        """Spends one argon2 verification for a login that has no account."""
        try:
            self._argon2.verify(self._dummy, plaintext)
        except VerifyMismatchError:
            pass
        return _REJECTED
