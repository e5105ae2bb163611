"""
tests/unit/test_validation_schemas.py — Unit tests for the auth marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Every schema rejects invalid input with a ValidationError on the right field
  - Field-level rules (format, length, password strength, defaults) live in schemas
  - Duplicate emails and credential checks are NOT tested here; they need the
    database and belong to the session coordinator

Unit test constraints:
  - No database.
  - No Flask application context. Schemas inherit from marshmallow.Schema
    directly, which is why they can be instantiated here.
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from backend.app.schemas.auth_schema import (
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
    UpdateProfileSchema,
)


def _registration(**overrides) -> dict:
    payload = {
        "email": "alice@example.com",
        "password": "Secure123",
        "first_name": "Alice",
        "last_name": "Liddell",
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
# RegisterSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestRegisterSchema:

    def _load(self, data: dict):
        return RegisterSchema().load(data)

    def test_valid_payload(self):
        result = self._load(_registration())
        assert result["email"]      == "alice@example.com"
        assert result["first_name"] == "Alice"
        assert result["last_name"]  == "Liddell"

    def test_defaults(self):
        result = self._load(_registration())
        assert result["phone"] is None
        assert result["consent_privacy"] is True
        assert result["consent_marketing"] is False

    def test_explicit_consents_and_phone(self):
        result = self._load(_registration(
            phone="+44 20 7946 0000",
            consent_privacy=True,
            consent_marketing=True,
        ))
        assert result["phone"] == "+44 20 7946 0000"
        assert result["consent_marketing"] is True

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(email="notanemail"))
        assert "email" in exc.value.messages

    def test_password_too_short_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(password="Ab1"))
        assert "password" in exc.value.messages

    def test_password_no_letter_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(password="12345678"))
        assert "password" in exc.value.messages

    def test_password_no_digit_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(password="password"))
        assert "password" in exc.value.messages

    def test_password_exactly_8_chars_passes(self):
        """Boundary: min 8 chars, 1 letter + 1 digit."""
        result = self._load(_registration(password="Passw0rd"))
        assert result["password"] == "Passw0rd"

    def test_blank_first_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(first_name="   "))
        assert "first_name" in exc.value.messages

    def test_last_name_too_long_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(last_name="x" * 101))
        assert "last_name" in exc.value.messages

    def test_phone_too_long_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(phone="1" * 31))
        assert "phone" in exc.value.messages

    @pytest.mark.parametrize("field", ["email", "password", "first_name", "last_name"])
    def test_missing_required_field_raises(self, field):
        payload = _registration()
        del payload[field]
        with pytest.raises(ValidationError) as exc:
            self._load(payload)
        assert exc.value.messages[field] == ["Missing data for required field."]

    def test_role_cannot_be_chosen(self):
        """Public registration never picks its own role."""
        with pytest.raises(ValidationError) as exc:
            self._load(_registration(role="admin"))
        assert "role" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# LoginSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestLoginSchema:

    def _load(self, data: dict):
        return LoginSchema().load(data)

    def test_valid_payload(self):
        result = self._load({"email": "alice@example.com", "password": "any_password"})
        assert result["email"] == "alice@example.com"

    def test_password_strength_not_checked_on_login(self):
        """Legacy accounts may predate the current strength rules."""
        result = self._load({"email": "alice@example.com", "password": "x"})
        assert result["password"] == "x"

    def test_empty_password_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "alice@example.com", "password": ""})
        assert "password" in exc.value.messages

    def test_missing_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"password": "pass"})
        assert "email" in exc.value.messages

    def test_empty_payload_raises(self):
        with pytest.raises(ValidationError):
            self._load({})


# ═══════════════════════════════════════════════════════════════════════════
# RefreshTokenSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestRefreshTokenSchema:

    def test_body_token(self):
        result = RefreshTokenSchema().load({"refresh_token": "abc123tokenstring"})
        assert result["refresh_token"] == "abc123tokenstring"

    def test_body_token_optional(self):
        """The cookie is the primary carrier; an empty body is valid."""
        assert RefreshTokenSchema().load({}) == {"refresh_token": None}


# ═══════════════════════════════════════════════════════════════════════════
# UpdateProfileSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateProfileSchema:

    def _load(self, data: dict):
        return UpdateProfileSchema().load(data)

    def test_partial_update(self):
        assert self._load({"phone": "555-0100"}) == {"phone": "555-0100"}

    def test_phone_can_be_cleared(self):
        assert self._load({"phone": None}) == {"phone": None}

    def test_empty_first_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"first_name": ""})
        assert "first_name" in exc.value.messages

    @pytest.mark.parametrize("field, label", [
        ("first_name", "First name"),
        ("last_name", "Last name"),
    ])
    def test_whitespace_only_name_raises(self, field, label):
        with pytest.raises(ValidationError) as exc:
            self._load({field: "   "})
        assert exc.value.messages[field] == [f"{label} is required."]

    @pytest.mark.parametrize("field, value", [
        ("email", "new@example.com"),
        ("role", "admin"),
        ("password", "NewPass123"),
    ])
    def test_protected_fields_rejected(self, field, value):
        with pytest.raises(ValidationError) as exc:
            self._load({field: value})
        assert field in exc.value.messages
