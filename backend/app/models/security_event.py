"""
models/security_event.py — SecurityEvent (audit log) table definition.

Append-only. Rows are written by services.audit_service.AuditSink and never
updated or deleted by application code.

`user_id` is a plain indexed integer, not a foreign key: an audit record
must outlive the account it mentions.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.extensions import db


class SecurityEventType(str, enum.Enum):
    REGISTER              = "REGISTER"
    LOGIN_SUCCESS         = "LOGIN_SUCCESS"
    LOGIN_FAILED          = "LOGIN_FAILED"
    LOGIN_LOCKED          = "LOGIN_LOCKED"
    LOGOUT                = "LOGOUT"
    TOKEN_REFRESH_SUCCESS = "TOKEN_REFRESH_SUCCESS"
    TOKEN_REFRESH_FAILED  = "TOKEN_REFRESH_FAILED"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class SecurityEvent(db.Model):
    __tablename__ = "security_events"

    id: Mapped[int] = mapped_column(primary_key=True)

    event_type: Mapped[SecurityEventType] = mapped_column(
        Enum(
            SecurityEventType,
            name="security_event_type",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
        index=True,
    )

    user_id:    Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    email:      Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    details:    Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<SecurityEvent id={self.id} "
            f"type={self.event_type.value} "
            f"user_id={self.user_id}>"
        )
