"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats.
  - services/auth_service.py: DUPLICATE_EMAIL (needs a DB lookup — not a
    schema concern) and every credential/lockout decision.

IMPORTANT: All schemas inherit from marshmallow.Schema directly so they can
be instantiated in unit tests without a Flask app context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates


def _not_blank(label: str):
    def _check(value: str) -> None:
        if not value.strip():
            raise ValidationError(f"{label} is required.")
    return _check


_FIRST_NAME_RULES = [validate.Length(min=1, max=100), _not_blank("First name")]
_LAST_NAME_RULES  = [validate.Length(min=1, max=100), _not_blank("Last name")]


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      email      : valid email format, max 255 chars
      password   : min 8 chars, at least one letter and one digit
      first_name : required, 1–100 chars
      last_name  : required, 1–100 chars
      phone      : optional, max 30 chars
      consent_privacy / consent_marketing : booleans
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    # Validated in @validates below to produce a clear message per missing rule.
    password = fields.Str(required=True, load_only=True)

    first_name = fields.Str(required=True, validate=_FIRST_NAME_RULES)
    last_name  = fields.Str(required=True, validate=_LAST_NAME_RULES)
    phone = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=30),
    )

    consent_privacy   = fields.Bool(load_default=True)
    consent_marketing = fields.Bool(load_default=False)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py
    (INVALID_CREDENTIALS 401 / ACCOUNT_LOCKED 423).
    """

    email    = fields.Email(required=True)
    password = fields.Str(required=True, load_only=True, validate=validate.Length(min=1))


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh

    The refresh token normally arrives in the HttpOnly cookie; the body field
    is optional and only consulted when the cookie is absent.
    """

    refresh_token = fields.Str(load_default=None, allow_none=True)


class UpdateProfileSchema(Schema):
    """PATCH /auth/me — every field optional; unknown fields rejected."""

    first_name = fields.Str(validate=_FIRST_NAME_RULES)
    last_name  = fields.Str(validate=_LAST_NAME_RULES)
    phone      = fields.Str(allow_none=True, validate=validate.Length(max=30))
