"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service operation
  - Return the standard response envelope: {"data": {...}, "warnings": []}

The session coordinator commits its own units of work (failure paths must
persist too), so only the profile update commits here.
AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register  → 201  sets refresh cookie
  POST   /auth/login     → 200  sets refresh cookie
  POST   /auth/refresh   → 200  rotates refresh cookie
  POST   /auth/logout    → 200  clears refresh cookie
  GET    /auth/me        → 200
  PATCH  /auth/me        → 200
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.app.errors import invalid_refresh_token
from backend.app.extensions import db, limiter
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.auth_schema import (
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
    UpdateProfileSchema,
)
from backend.app.services import auth_service
from backend.app.services.audit_service import ClientInfo

auth_bp = Blueprint("auth", __name__)


# ── Request/response helpers ───────────────────────────────────────────────

def _coordinator() -> auth_service.SessionCoordinator:
    return current_app.extensions["session_coordinator"]


def _client_info() -> ClientInfo:
    return ClientInfo(
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _login_rate_key() -> str:
    """Login attempts are throttled per origin address + submitted email."""
    body = request.get_json(silent=True) or {}
    email = body.get("email") if isinstance(body, dict) else None
    return f"{request.remote_addr}-{str(email or 'unknown').lower()}"


def _login_rate_limit() -> str:
    return current_app.config["LOGIN_RATE_LIMIT"]


def _register_rate_limit() -> str:
    return current_app.config["REGISTER_RATE_LIMIT"]


def _session_response(result: auth_service.AuthResult, status: int):
    """Body carries the access token; the refresh secret goes in an HttpOnly cookie."""
    config = current_app.config
    response = jsonify({"data": result.to_dict(), "warnings": []})
    response.set_cookie(
        config["REFRESH_COOKIE_NAME"],
        result.refresh_token.secret,
        max_age=int(config["JWT_REFRESH_TOKEN_EXPIRES"].total_seconds()),
        path=config["REFRESH_COOKIE_PATH"],
        secure=config["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite="Strict",
    )
    return response, status


# ── Endpoints ──────────────────────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit(_register_rate_limit)
def register():
    """POST /auth/register — Create a patient account; return tokens. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True, silent=True) or {})
    result = _coordinator().register(
        db.session,
        email=data["email"],
        password=data["password"],
        first_name=data["first_name"].strip(),
        last_name=data["last_name"].strip(),
        phone=data["phone"],
        consent_privacy=data["consent_privacy"],
        consent_marketing=data["consent_marketing"],
        client=_client_info(),
    )
    return _session_response(result, 201)


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(_login_rate_limit, key_func=_login_rate_key)
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True, silent=True) or {})
    result = _coordinator().login(
        db.session,
        email=data["email"],
        password=data["password"],
        client=_client_info(),
    )
    return _session_response(result, 200)


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Rotate the refresh token and issue a new access token."""
    data = RefreshTokenSchema().load(request.get_json(force=True, silent=True) or {})
    raw_refresh_token = (
        request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
        or data["refresh_token"]
    )
    if not raw_refresh_token:
        raise invalid_refresh_token()

    result = _coordinator().refresh(
        db.session,
        refresh_token=raw_refresh_token,
        client=_client_info(),
    )
    return _session_response(result, 200)


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    """POST /auth/logout — Revoke every refresh token of the caller. (Auth required.)"""
    _coordinator().logout(
        db.session,
        user_id=g.user_id,
        email=g.user_email,
        client=_client_info(),
    )
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    response.delete_cookie(
        current_app.config["REFRESH_COOKIE_NAME"],
        path=current_app.config["REFRESH_COOKIE_PATH"],
        secure=current_app.config["REFRESH_COOKIE_SECURE"],
        httponly=True,
        samesite="Strict",
    )
    return response, 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/me", methods=["PATCH"])
@require_auth
def update_me():
    """PATCH /auth/me — Update first name, last name or phone. (Auth required.)"""
    data = UpdateProfileSchema().load(request.get_json(force=True, silent=True) or {})
    result = auth_service.update_profile(
        user_id=g.user_id,
        changes=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
