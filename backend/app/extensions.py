"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and the rate limiter as module-level objects so they
can be imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `limiter` from here wherever needed.

    from backend.app.extensions import db, limiter

Do not pass the app object directly to SQLAlchemy() or Limiter() at import
time — that would prevent running tests with a separate test app instance.

The models are plain declarative classes on `db.Model`. The session
coordinator only ever receives a Session, so the same models work with a
bare `sessionmaker` outside Flask (service tests, CLI).
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

# Per-route limits are declared on the auth blueprint; no global default.
# Storage and the enabled flag come from RATELIMIT_* config keys.
limiter = Limiter(key_func=get_remote_address)
