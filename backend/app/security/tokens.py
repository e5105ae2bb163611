"""
security/tokens.py — Access and refresh token issuance.

Token design:
  - Access token: JWT, HS256, 15 min TTL. Claims: sub (user id as str),
    email, role, sid (session id), type="access", iat, exp, jti.
    Stateless; verified without a DB lookup.
  - Refresh token: 64 random bytes as hex. Only its SHA-256 hex digest is
    persisted. The raw value is handed to the client once (cookie) and never
    stored. 7 day TTL, rotated on every use.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

import jwt

from backend.app.errors import AppError, ErrorCode

_ACCESS_TOKEN_TYPE = "access"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IssuedRefreshToken:
    secret: str
    lookup_hash: str
    expires_at: datetime

    def __repr__(self) -> str:
        """Safe representation without exposing the secret."""
        return f"IssuedRefreshToken(expires_at={self.expires_at.isoformat()})"


class TokenIssuer:

    def __init__(
            self,
            secret_key: str,
            algorithm: str = "HS256",
            access_ttl: timedelta = timedelta(minutes=15),
            refresh_ttl: timedelta = timedelta(days=7),
            clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secret_key  = secret_key
        self._algorithm   = algorithm
        self.access_ttl   = access_ttl
        self.refresh_ttl  = refresh_ttl
        self._clock       = clock

    # ── Access tokens ──────────────────────────────────────────────────────

    def issue_access_token(self, user, session_id: str) -> str:
        """
        Creates a signed JWT for `user` (anything with id, email and role).
        `session_id` becomes the `sid` claim checked by require_auth.
        """
        now = self._clock()
        payload = {
            "sub":   str(user.id),
            "email": user.email,
            "role":  user.role.value,
            "sid":   session_id,
            "type":  _ACCESS_TOKEN_TYPE,
            "iat":   now,
            "exp":   now + self.access_ttl,
            # Guarantees each issued token is unique even if generated in the same second.
            "jti":   secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify_access_token(self, token: str) -> dict:
        """
        Returns the claims of a valid access token.

        Raises:
          AppError(TOKEN_EXPIRED, 401) — signature fine, exp in the past
          AppError(TOKEN_INVALID, 401) — bad signature, malformed, wrong type
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AppError(
                ErrorCode.TOKEN_EXPIRED,
                "The access token has expired. Use POST /auth/refresh to obtain a new one.",
                401,
            )
        except jwt.InvalidTokenError:
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "The access token is invalid or has been tampered with.",
                401,
            )

        if claims.get("type") != _ACCESS_TOKEN_TYPE:
            raise AppError(
                ErrorCode.TOKEN_INVALID,
                "The access token is invalid or has been tampered with.",
                401,
            )
        return claims

    # ── Refresh tokens ─────────────────────────────────────────────────────

    def issue_refresh_token(self) -> IssuedRefreshToken:
        secret = secrets.token_hex(64)
        return IssuedRefreshToken(
            secret=secret,
            lookup_hash=self.hash_for_lookup(secret),
            expires_at=self._clock() + self.refresh_ttl,
        )

    @staticmethod
    def hash_for_lookup(secret: str) -> str:
        """SHA-256 hex digest of a raw refresh token. Used for storage and lookup."""
        return hashlib.sha256(secret.encode("utf-8")).hexdigest()

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_urlsafe(32)
