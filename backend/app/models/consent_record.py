"""
models/consent_record.py — ConsentRecord table definition.

One row per consent decision captured at registration (privacy policy,
marketing). Written in the same unit of work as the account itself.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class ConsentType(str, enum.Enum):
    PRIVACY_POLICY = "privacy_policy"
    MARKETING      = "marketing"


class ConsentRecord(db.Model):
    __tablename__ = "consent_records"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    consent_type: Mapped[ConsentType] = mapped_column(
        Enum(
            ConsentType,
            name="consent_type",
            native_enum=False,
            length=32,
            values_callable=lambda cls: [member.value for member in cls],
        ),
        nullable=False,
    )
    consented:  Mapped[bool] = mapped_column(Boolean, nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="consent_records",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ConsentRecord user_id={self.user_id} "
            f"type={self.consent_type.value} consented={self.consented}>"
        )
