"""
middleware/auth_middleware.py — JWT authentication decorator.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies signature, expiry and token type via TokenIssuer
  3. Loads the account; it must exist and be active
  4. For patient/doctor accounts, requires the token's `sid` claim to match
     the stored session token — a newer login elsewhere revokes this one
  5. Attaches user_id, user_email and user_role to flask.g

Strict responsibility boundary:
  - This middleware authenticates (401). It does not authorise (403).
  - Services receive user_id as a plain integer argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING   (401) — no Authorization header
  TOKEN_INVALID   (401) — malformed header, bad signature, unknown/inactive user
  TOKEN_EXPIRED   (401) — valid token but exp claim is in the past
  SESSION_REVOKED (401) — superseded by a newer login or ended by logout
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode
from backend.app.extensions import db
from backend.app.models.user import User


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @auth_bp.route("/me")
        @require_auth
        def me():
            user_id = g.user_id  # always an int when this runs
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and populates flask.g.

    Separated from the decorator wrapper for testability — can be called
    directly in tests without wrapping a real view function.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    # ── Step 3: Verify the JWT ────────────────────────────────────────────
    tokens = current_app.extensions["session_coordinator"].tokens
    claims = tokens.verify_access_token(parts[1])

    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    # ── Step 4: The account must still exist and be active ────────────────
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not belong to an active account.",
            401,
        )

    # ── Step 5: Single-session check (admins are exempt) ──────────────────
    if not user.is_admin and user.session_token != claims.get("sid"):
        raise AppError(
            ErrorCode.SESSION_REVOKED,
            "This session has ended. Please sign in again.",
            401,
        )

    g.user_id    = user.id
    g.user_email = user.email
    g.user_role  = user.role
