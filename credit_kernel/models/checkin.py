"""
Module: credit_kernel.models.checkin
Responsibility: ORM persistence for daily check-ins.

Invariants enforced:
    D1 -- One check-in per user per UTC day: (user_id, checkin_date) is
          unique, so two racing check-ins cannot both be awarded.
    D2 -- Every check-in points at the credit batch it awarded.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import Date, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base, UUIDString
from credit_kernel.db.types import UTCDateTime


class DailyCheckin(Base):
    """A user's check-in on one UTC calendar day."""

    __tablename__ = "daily_checkins"

    __table_args__ = (
        UniqueConstraint("user_id", "checkin_date", name="uq_daily_checkin_user_date"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    checkin_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("credit_batches.id"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DailyCheckin {self.user_id} {self.checkin_date}>"
