"""
tests/service/conftest.py — Fixtures for SessionCoordinator tests.

Design:
  - No Flask app. The coordinator only ever receives a Session, so these
    tests drive it through a plain sessionmaker bound to a SQLite file in
    tmp_path (one database per test, no cleanup needed).
  - pysqlite's own transaction handling is switched off and every
    transaction is opened with BEGIN IMMEDIATE. That takes SQLite's write
    lock up front, so the threaded tests below see real serialisation
    instead of "database is locked" errors on lock upgrade.
  - Time is a FakeClock shared by the coordinator and the token issuer.
    It starts at the real current time so access tokens issued before any
    advance() still verify.
  - Argon2 runs at minimum cost.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import bcrypt
import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import sessionmaker

from backend.app.extensions import db
from backend.app.models import consent_record, refresh_token, security_event  # noqa: F401
from backend.app.models.security_event import SecurityEvent
from backend.app.models.user import Role, User
from backend.app.security.password_hasher import CredentialHasher
from backend.app.security.tokens import TokenIssuer
from backend.app.services.audit_service import ClientInfo
from backend.app.services.auth_service import SessionCoordinator

PASSWORD = "Correct123"
CLIENT = ClientInfo(ip_address="198.51.100.7", user_agent="pytest")


class FakeClock:

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'auth.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    db.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hasher():
    return CredentialHasher(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def coordinator(hasher, clock):
    return SessionCoordinator(
        hasher=hasher,
        tokens=TokenIssuer(secret_key="service-test-secret", clock=clock),
        clock=clock,
    )


@pytest.fixture
def make_account(session_factory, hasher):
    """
    Inserts an account directly, bypassing register(). Used for states the
    public API cannot produce: admin/doctor roles, legacy bcrypt hashes,
    inactive accounts.
    """

    def _make(
            email: str = "pat@example.com",
            password: str = PASSWORD,
            role: Role = Role.PATIENT,
            legacy_bcrypt: bool = False,
            is_active: bool = True,
    ) -> int:
        if legacy_bcrypt:
            # Legacy credentials cover only the first 72 bytes.
            password_hash = bcrypt.hashpw(
                password.encode("utf-8")[:72], bcrypt.gensalt(rounds=4)
            ).decode("utf-8")
        else:
            password_hash = hasher.hash(password)

        with session_factory() as s:
            user = User(
                email=email,
                password_hash=password_hash,
                first_name="Test",
                last_name=role.value.title(),
                role=role,
                is_active=is_active,
                failed_login_attempts=0,
            )
            s.add(user)
            s.commit()
            return user.id

    return _make


@pytest.fixture
def load_user(session_factory):
    def _load(user_id: int) -> User:
        with session_factory(expire_on_commit=False) as s:
            return s.get(User, user_id)

    return _load


@pytest.fixture
def events(session_factory):
    """Returns [(event_type, user_id, details), ...] in insertion order."""

    def _events():
        with session_factory() as s:
            rows = s.scalars(select(SecurityEvent).order_by(SecurityEvent.id)).all()
            return [(row.event_type.value, row.user_id, row.details) for row in rows]

    return _events
