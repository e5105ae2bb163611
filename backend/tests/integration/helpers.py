"""
tests/integration/helpers.py — Shared request helpers (not fixtures).

Plain functions so they can be called with arbitrary arguments from any
test without fixture parameterisation overhead.
"""

from __future__ import annotations

REFRESH_COOKIE = "refresh_token"
PASSWORD = "Password1"


def register(
    client,
    email: str = "alice@example.com",
    password: str = PASSWORD,
    **extra,
):
    """
    Registers a patient and returns the HTTP response.
    Body: {"data": {"access_token": ..., "user": {...}}, "warnings": []}
    """
    payload = {
        "email": email,
        "password": password,
        "first_name": "Alice",
        "last_name": "Liddell",
    }
    payload.update(extra)
    resp = client.post("/api/v1/auth/register", json=payload)
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp


def login(client, email: str = "alice@example.com", password: str = PASSWORD):
    """Posts credentials and returns the HTTP response, whatever its status."""
    return client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def access_token(resp) -> str:
    return resp.get_json()["data"]["access_token"]


def set_cookie_header(resp, name: str = REFRESH_COOKIE) -> str:
    """Returns the raw Set-Cookie header the response sets for `name`."""
    for header in resp.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return header
    raise AssertionError(f"response sets no {name} cookie")


def refresh_cookie(resp) -> str:
    """Returns the refresh token value from the response's Set-Cookie header."""
    header = set_cookie_header(resp)
    return header.split(";", 1)[0].split("=", 1)[1]


def refresh_cookie_header(secret: str) -> dict:
    return {"Cookie": f"{REFRESH_COOKIE}={secret}"}


def refresh(client, secret: str):
    return client.post("/api/v1/auth/refresh", headers=refresh_cookie_header(secret))
