"""
services/auth_service.py — Session coordinator and account profile logic.

Responsibilities:
  - Registration, login, refresh-token exchange and logout
  - Progressive lockout bookkeeping (failed counter, locked_until)
  - Transparent bcrypt -> argon2id credential migration on login
  - Single active session for patient/doctor accounts
  - Security audit events at every decision point

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, flask.current_app or HTTP status codes
    (status codes live on AppError, which is raised, not returned)
  - The DB session is always passed in. The coordinator holds no DB handle
    and no per-request state, so one instance serves every request.

Unit of work:
  Each transition commits its own state change through _unit_of_work(),
  then records its audit event. Failure paths commit too: a failed login
  must persist the incremented counter even though the request ends in 401.
  If anything inside a unit of work fails the whole unit is rolled back and
  the error propagates; no token leaves this module unless its refresh row
  is durably stored.

Concurrency:
  - Failed-login increment and lock assignment are one UPDATE ... RETURNING,
    computed from the row's current counter, so parallel guesses cannot lose
    increments or under-lock the account.
  - Refresh exchange is one conditional UPDATE (revoked = false -> true)
    ... RETURNING. Two racing exchanges of the same secret: one row, one
    winner.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator

from sqlalchemy import DateTime, case, literal, null, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.errors import (
    AccountLockedError,
    AppError,
    ErrorCode,
    duplicate_email,
    invalid_credentials,
    invalid_refresh_token,
)
from backend.app.models.consent_record import ConsentRecord, ConsentType
from backend.app.models.refresh_token import RefreshToken
from backend.app.models.security_event import SecurityEventType
from backend.app.models.user import Role, User
from backend.app.security.lockout import LOCKOUT_TIERS, Locked, LockoutTier, as_utc, lock_state
from backend.app.security.password_hasher import CredentialHasher
from backend.app.security.tokens import IssuedRefreshToken, TokenIssuer, utcnow
from backend.app.services.audit_service import AuditSink, ClientInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    """
    Outcome of a transition that opens a session.

    `refresh_token.secret` is delivered by the route as an HttpOnly cookie and
    is absent from to_dict().
    """
    access_token: str
    refresh_token: IssuedRefreshToken
    user: dict

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "user": self.user,
        }


# ── Private helpers ────────────────────────────────────────────────────────

def normalize_email(email: str) -> str:
    return email.strip().lower()


def _build_user_dict(user: User) -> dict:
    """Serialises a User to the public account shape. No business logic."""
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role.value,
    }


def _build_profile_dict(user: User) -> dict:
    return {
        **_build_user_dict(user),
        "phone": user.phone,
        "created_at": user.created_at.isoformat(),
    }


@contextmanager
def _unit_of_work(session: Session) -> Iterator[None]:
    """Commits on normal exit; rolls back and re-raises on any error."""
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


# ── Session coordinator ────────────────────────────────────────────────────

class SessionCoordinator:

    def __init__(
            self,
            hasher: CredentialHasher,
            tokens: TokenIssuer,
            audit: AuditSink | None = None,
            lockout_tiers: tuple[LockoutTier, ...] = LOCKOUT_TIERS,
            clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.hasher = hasher
        self.tokens = tokens
        self.audit  = audit if audit is not None else AuditSink()
        self._tiers = lockout_tiers
        self._clock = clock

    @classmethod
    def from_config(cls, config: Mapping) -> SessionCoordinator:
        """Builds a coordinator from a Flask config mapping."""
        return cls(
            hasher=CredentialHasher(
                memory_cost=config["ARGON2_MEMORY_COST"],
                time_cost=config["ARGON2_TIME_COST"],
                parallelism=config["ARGON2_PARALLELISM"],
            ),
            tokens=TokenIssuer(
                secret_key=config["JWT_SECRET_KEY"],
                algorithm=config.get("JWT_ALGORITHM", "HS256"),
                access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
                refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            ),
        )

    # ── Register ───────────────────────────────────────────────────────────

    def register(
            self,
            session: Session,
            *,
            email: str,
            password: str,
            first_name: str,
            last_name: str,
            client: ClientInfo,
            phone: str | None = None,
            consent_privacy: bool = True,
            consent_marketing: bool = False,
            role: Role = Role.PATIENT,
    ) -> AuthResult:
        """
        Creates an account and opens its first session.

        Raises:
          AppError(DUPLICATE_EMAIL, 400) — email already registered, compared
            case-insensitively; also raised when a concurrent registration
            wins the unique constraint.
        """
        email = normalize_email(email)
        if self._email_taken(session, email):
            raise duplicate_email()

        password_hash = self.hasher.hash(password)

        try:
            with _unit_of_work(session):
                user = User(
                    email=email,
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=last_name,
                    phone=phone,
                    role=role,
                    is_active=True,
                    failed_login_attempts=0,
                )
                session.add(user)
                session.flush()  # populate user.id before dependent rows

                session.add_all([
                    ConsentRecord(
                        user_id=user.id,
                        consent_type=ConsentType.PRIVACY_POLICY,
                        consented=consent_privacy,
                        ip_address=client.ip_address,
                        user_agent=client.user_agent,
                    ),
                    ConsentRecord(
                        user_id=user.id,
                        consent_type=ConsentType.MARKETING,
                        consented=consent_marketing,
                        ip_address=client.ip_address,
                        user_agent=client.user_agent,
                    ),
                ])
                result = self._open_session(session, user)
        except IntegrityError:
            if self._email_taken(session, email):
                raise duplicate_email() from None
            raise

        self.audit.record(
            session,
            SecurityEventType.REGISTER,
            client=client,
            user_id=result.user["id"],
            email=email,
            details={"role": role.value},
        )
        return result

    # ── Login ──────────────────────────────────────────────────────────────

    def login(
            self,
            session: Session,
            *,
            email: str,
            password: str,
            client: ClientInfo,
    ) -> AuthResult:
        """
        Verifies credentials and opens a new session.

        Raises:
          AppError(INVALID_CREDENTIALS, 401) — unknown/inactive email or wrong
            password; identical for both so emails cannot be enumerated.
          AccountLockedError (423) — account is inside a lockout window, or
            this failure pushed it into one.
        """
        now = self._clock()
        email = normalize_email(email)

        user = session.execute(
            select(User).where(User.email == email, User.is_active.is_(True))
        ).scalar_one_or_none()

        if user is None:
            # Unknown emails cost the same hashing work as a wrong password.
            self.hasher.verify_dummy(password)
            self.audit.record(
                session,
                SecurityEventType.LOGIN_FAILED,
                client=client,
                email=email,
                details={"reason": "unknown_account"},
            )
            raise invalid_credentials()

        user_id = user.id

        # Locked accounts are rejected before any hashing work is done.
        state = lock_state(user.locked_until, now)
        if isinstance(state, Locked):
            minutes = state.minutes_remaining(now)
            self.audit.record(
                session,
                SecurityEventType.LOGIN_LOCKED,
                client=client,
                user_id=user_id,
                email=email,
                details={"minutes_remaining": minutes},
            )
            raise AccountLockedError(minutes, state.until)

        verdict = self.hasher.verify(password, user.password_hash)

        if not verdict.valid:
            attempts, locked_until = self._record_failed_attempt(session, user_id, now)
            self.audit.record(
                session,
                SecurityEventType.LOGIN_FAILED,
                client=client,
                user_id=user_id,
                email=email,
                details={
                    "reason": "wrong_password",
                    "attempt": attempts,
                    "locked": locked_until is not None,
                },
            )
            new_state = lock_state(locked_until, now)
            if isinstance(new_state, Locked):
                logger.warning(
                    "Account %s locked until %s after repeated failed logins",
                    user_id,
                    new_state.until.isoformat(),
                )
                raise AccountLockedError(new_state.minutes_remaining(now), new_state.until)
            raise invalid_credentials()

        new_hash = self.hasher.hash(password) if verdict.needs_rehash else None

        with _unit_of_work(session):
            session.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=0, last_failed_login=None, locked_until=None)
            )
            if new_hash is not None:
                session.execute(
                    update(User).where(User.id == user_id).values(password_hash=new_hash)
                )
            result = self._open_session(session, user)

        if new_hash is not None:
            logger.info("Upgraded legacy credential for user %s to argon2id", user_id)

        self.audit.record(
            session,
            SecurityEventType.LOGIN_SUCCESS,
            client=client,
            user_id=user_id,
            email=email,
            details={"rehashed": new_hash is not None},
        )
        return result

    # ── Refresh ────────────────────────────────────────────────────────────

    def refresh(
            self,
            session: Session,
            *,
            refresh_token: str,
            client: ClientInfo,
    ) -> AuthResult:
        """
        Exchanges a refresh token for a new access + refresh token pair.

        The presented token is revoked in the same unit of work that stores
        its successor (mandatory rotation). Replaying it afterwards fails.

        Raises:
          AppError(REFRESH_TOKEN_INVALID, 401) — unknown, expired, revoked,
            or owned by an inactive account. The causes are not distinguished.
        """
        now = self._clock()
        token_hash = self.tokens.hash_for_lookup(refresh_token)

        result = None
        with _unit_of_work(session):
            user_id = self._consume_refresh_token(session, token_hash, now)
            if user_id is not None:
                user = session.get(User, user_id)
                result = self._open_session(session, user)

        if result is None:
            self.audit.record(
                session,
                SecurityEventType.TOKEN_REFRESH_FAILED,
                client=client,
                details={"reason": "no_active_token"},
            )
            raise invalid_refresh_token()

        self.audit.record(
            session,
            SecurityEventType.TOKEN_REFRESH_SUCCESS,
            client=client,
            user_id=result.user["id"],
            email=result.user["email"],
        )
        return result

    # ── Logout ─────────────────────────────────────────────────────────────

    def logout(
            self,
            session: Session,
            *,
            user_id: int,
            client: ClientInfo,
            email: str | None = None,
    ) -> None:
        """
        Revokes every refresh token of the account and clears its session.
        Idempotent: logging out twice is not an error.
        """
        with _unit_of_work(session):
            revoked = self._revoke_refresh_tokens(session, user_id)
            session.execute(
                update(User).where(User.id == user_id).values(session_token=None)
            )

        self.audit.record(
            session,
            SecurityEventType.LOGOUT,
            client=client,
            user_id=user_id,
            email=email,
            details={"revoked_tokens": revoked},
        )

    # ── Internals ──────────────────────────────────────────────────────────

    def _open_session(self, session: Session, user: User) -> AuthResult:
        """
        Mints an access + refresh token pair and persists the refresh row.

        Patient and doctor accounts get exactly one live session: every other
        unrevoked refresh token is revoked and the stored session token is
        overwritten. Admin accounts may hold several sessions at once.
        Must run inside a unit of work.
        """
        session_id = self.tokens.new_session_id()
        refresh = self.tokens.issue_refresh_token()

        if not user.is_admin:
            self._revoke_refresh_tokens(session, user.id)
            session.execute(
                update(User).where(User.id == user.id).values(session_token=session_id)
            )

        session.add(RefreshToken(
            user_id=user.id,
            token_hash=refresh.lookup_hash,
            expires_at=refresh.expires_at,
        ))
        # flush so a storage failure surfaces before any token is handed out
        session.flush()

        return AuthResult(
            access_token=self.tokens.issue_access_token(user, session_id),
            refresh_token=refresh,
            user=_build_user_dict(user),
        )

    def _record_failed_attempt(
            self,
            session: Session,
            user_id: int,
            now: datetime,
    ) -> tuple[int, datetime | None]:
        """
        Atomically increments the failed counter and derives locked_until
        from the new count in the same statement. Returns (count, locked_until).
        """
        attempts = User.failed_login_attempts + 1
        locked_until = case(
            *[
                (attempts >= tier.attempts, literal(now + tier.duration, DateTime(timezone=True)))
                for tier in sorted(self._tiers, key=lambda t: t.attempts, reverse=True)
            ],
            else_=null(),
        )

        with _unit_of_work(session):
            row = session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    failed_login_attempts=attempts,
                    last_failed_login=now,
                    locked_until=locked_until,
                )
                .returning(User.failed_login_attempts, User.locked_until)
                .execution_options(synchronize_session=False)
            ).one()

        return row.failed_login_attempts, (
            as_utc(row.locked_until) if row.locked_until is not None else None
        )

    def _consume_refresh_token(
            self,
            session: Session,
            token_hash: str,
            now: datetime,
    ) -> int | None:
        """Revokes the matching active token and returns its owner's id, or None."""
        active_owners = select(User.id).where(User.is_active.is_(True))
        row = session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > now,
                RefreshToken.user_id.in_(active_owners),
            )
            .values(revoked=True)
            .returning(RefreshToken.user_id)
            .execution_options(synchronize_session=False)
        ).first()
        return None if row is None else row.user_id

    @staticmethod
    def _revoke_refresh_tokens(session: Session, user_id: int) -> int:
        result = session.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .values(revoked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def _email_taken(session: Session, email: str) -> bool:
        return session.execute(
            select(User.id).where(User.email == email)
        ).first() is not None


# ── Profile ────────────────────────────────────────────────────────────────

def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user_id from the JWT no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_profile_dict(user)


def update_profile(user_id: int, changes: dict, session: Session) -> dict:
    """
    Applies first_name / last_name / phone changes. Email, role and password
    are not editable here. The caller commits.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    for field in ("first_name", "last_name", "phone"):
        if field in changes:
            setattr(user, field, changes[field])
    session.flush()
    return _build_profile_dict(user)
