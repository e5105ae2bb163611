"""
errors.py — AppError base class and error code registry.

Every error returned by the auth API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Messages never say whether an email exists, which hash algorithm a
    credential uses, or how many failed attempts an account has.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations

from datetime import datetime


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class AccountLockedError(AppError):
    """
    423 — the account is inside a lockout window.

    Only the remaining wait is exposed; the attempt count stays server-side.
    """

    def __init__(self, minutes_remaining: int, locked_until: datetime) -> None:
        super().__init__(
            ErrorCode.ACCOUNT_LOCKED,
            f"Account is temporarily locked. Try again in {minutes_remaining} minute(s).",
            423,
        )
        self.minutes_remaining = minutes_remaining
        self.locked_until      = locked_until

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"]["retry_after_minutes"] = self.minutes_remaining
        return payload


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    NOT_FOUND                  = "NOT_FOUND"
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"     # 405

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    SESSION_REVOKED            = "SESSION_REVOKED"        # 401 — superseded by a newer login
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403
    ACCOUNT_LOCKED             = "ACCOUNT_LOCKED"         # 423

    # ── Throttling (429) ───────────────────────────────────────────────────
    RATE_LIMITED               = "RATE_LIMITED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Factories for the errors the session coordinator returns ──────────────
# One constructor per code keeps the wording identical on every branch,
# which matters for INVALID_CREDENTIALS (unknown email == wrong password).

def invalid_credentials() -> AppError:
    return AppError(
        ErrorCode.INVALID_CREDENTIALS,
        "Invalid email or password.",
        401,
    )


def invalid_refresh_token() -> AppError:
    return AppError(
        ErrorCode.REFRESH_TOKEN_INVALID,
        "The refresh token is invalid, expired, or has been revoked.",
        401,
    )


def duplicate_email() -> AppError:
    return AppError(
        ErrorCode.DUPLICATE_EMAIL,
        "This email address is already registered.",
        400,
        field="email",
    )
