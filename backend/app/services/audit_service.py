"""
services/audit_service.py — Best-effort security audit sink.

AuditSink.record() appends one SecurityEvent and commits it on its own.
Whatever goes wrong inside (DB unavailable, bad payload, flush error) is
logged to the operational logger and swallowed: an audit outage must never
turn into an authentication outage.

Because record() commits, callers commit their own state change first and
record afterwards. The session coordinator follows that order on every
branch.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.security_event import SecurityEvent, SecurityEventType

logger = logging.getLogger(__name__)

_MAX_USER_AGENT = 512


@dataclass(frozen=True)
class ClientInfo:
    """Where a request came from. Built by the route layer from flask.request."""
    ip_address: str | None = None
    user_agent: str | None = None


class AuditSink:

    def record(
            self,
            session: Session,
            event_type: SecurityEventType,
            *,
            client: ClientInfo,
            user_id: int | None = None,
            email: str | None = None,
            details: dict | None = None,
    ) -> None:
        event = SecurityEvent(
            event_type=event_type,
            user_id=user_id,
            email=email,
            ip_address=client.ip_address,
            user_agent=(client.user_agent or "")[:_MAX_USER_AGENT] or None,
            details=details,
        )
        try:
            self._write(session, event)
        except Exception:
            logger.exception(
                "Failed to write security event %s (user_id=%s)",
                event_type.value,
                user_id,
            )
            with suppress(SQLAlchemyError):
                session.rollback()

    def _write(self, session: Session, event: SecurityEvent) -> None:
        session.add(event)
        session.commit()
