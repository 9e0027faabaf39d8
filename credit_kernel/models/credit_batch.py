"""
Module: credit_kernel.models.credit_batch
Responsibility: ORM persistence for credit batches -- grants of prepaid
    credits to a user, each with its own remaining balance and expiry.
Architecture position: Kernel > Models.  May import from db/ only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    B1 -- Grant size is positive.  credits > 0 (CHECK constraint).
    B2 -- Remaining stays in range.  0 <= remaining_credits <= credits
          (CHECK constraints).  A refund that would restore more than was
          granted is rejected by the database, not just the service.
    B3 -- Idempotent grants.  idempotency_key is unique when present, so a
          replayed welcome grant or check-in cannot mint credits twice.
    B4 -- Expiry ordering.  (user_id, status, expires_at) index supports
          oldest-expiring-first consumption.

Failure modes:
    - IntegrityError on a B1/B2 violation or on a duplicate idempotency_key.

Audit relevance:
    The original grant size (credits) never changes after creation.  Every
    decrement is explained by a ConsumptionLineItem, so remaining_credits can
    be re-derived as credits minus the line items of active consumptions.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import TimestampedBase
from credit_kernel.db.types import UTCDateTime


class RecordStatus(str, Enum):
    """Lifecycle status shared by batches and consumption records.

    Contract: ACTIVE -> DELETED is one-way.
    """

    ACTIVE = "active"
    DELETED = "deleted"


class GrantScene(str, Enum):
    """Why a batch of credits was granted."""

    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    RENEWAL = "renewal"
    GIFT = "gift"
    AWARD = "award"
    ADJUSTMENT = "adjustment"


class CreditBatch(TimestampedBase):
    """
    One grant of credits to one user.

    Contract:
        Created by purchases, subscriptions, welcome gifts, check-in awards
        and manual adjustments.  Consumption decrements remaining_credits;
        refund increments it back.  A batch counts toward the balance while
        it is ACTIVE, has remaining credits and has not expired.

    Guarantees:
        - transaction_no is unique across all batches.
        - expires_at of None means the batch never expires.
    """

    __tablename__ = "credit_batches"

    __table_args__ = (
        CheckConstraint("credits > 0", name="ck_credit_batch_credits_positive"),
        CheckConstraint(
            "remaining_credits >= 0", name="ck_credit_batch_remaining_non_negative"
        ),
        CheckConstraint(
            "remaining_credits <= credits", name="ck_credit_batch_remaining_le_credits"
        ),
        # Query: spendable batches for a user, soonest expiry first
        Index("idx_credit_batch_user_status_expiry", "user_id", "status", "expires_at"),
        Index("idx_credit_batch_created_at", "created_at"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    transaction_no: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    scene: Mapped[GrantScene] = mapped_column(
        String(20),
        nullable=False,
    )

    # INVARIANT B1: frozen after creation
    credits: Mapped[int] = mapped_column(
        nullable=False,
    )

    # INVARIANT B2: 0 <= remaining_credits <= credits
    remaining_credits: Mapped[int] = mapped_column(
        nullable=False,
    )

    status: Mapped[RecordStatus] = mapped_column(
        String(10),
        nullable=False,
        default=RecordStatus.ACTIVE,
    )

    expires_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    order_no: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    # INVARIANT B3
    idempotency_key: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        unique=True,
    )

    batch_metadata: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    def is_expired(self, as_of: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= as_of

    def is_spendable(self, as_of: datetime) -> bool:
        return self.is_active and not self.is_expired(as_of) and self.remaining_credits > 0

    def __repr__(self) -> str:
        return (
            f"<CreditBatch {self.id}: user={self.user_id} "
            f"{self.remaining_credits}/{self.credits} {self.status}>"
        )
