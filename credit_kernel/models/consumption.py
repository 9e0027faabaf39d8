"""
Module: credit_kernel.models.consumption
Responsibility: ORM persistence for credit consumption -- one header row per
    debit and one line item per credit batch the debit drew from.
Architecture position: Kernel > Models.  May import from db/ and sibling
    models only.  MUST NOT import from services/, selectors/, or domain/.

Invariants enforced:
    C1 -- Positive debits.  amount > 0 on the header and on every line item.
    C2 -- One line per batch.  (consumption_id, batch_id) is unique.
    C3 -- Line items sum to the header amount (enforced by CreditLedger at
          write time; verified by ReconciliationService.audit()).
    C4 -- One-way lifecycle.  ACTIVE -> DELETED, stamped with refunded_at.

Failure modes:
    - IntegrityError on C1/C2 violations or on a line item pointing at a
      batch that does not exist.

Audit relevance:
    The line items are the exact record of which batches paid for a debit,
    replacing a serialized "consumed detail" blob.  A refund walks the same
    rows in reverse.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_kernel.db.base import Base, TimestampedBase, UUIDString
from credit_kernel.db.types import UTCDateTime
from credit_kernel.models.credit_batch import RecordStatus

if TYPE_CHECKING:
    from credit_kernel.models.credit_batch import CreditBatch


class ConsumptionRecord(TimestampedBase):
    """
    Header row for one debit of a user's credits.

    Contract:
        Written in the same transaction as the business action that spent the
        credits.  Soft-deleted (status DELETED) when the debit is refunded.

    Guarantees:
        - amount equals the sum of line item amounts (C3).
        - task_id, when set, names the media task this debit paid for.
    """

    __tablename__ = "credit_consumptions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_consumption_amount_positive"),
        Index("idx_consumption_user_status", "user_id", "status"),
        Index("idx_consumption_task", "task_id"),
        Index("idx_consumption_created_at", "created_at"),
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

    # What the credits were spent on (e.g. "media-task", "media-task-translation")
    reason: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(
        nullable=False,
    )

    status: Mapped[RecordStatus] = mapped_column(
        String(10),
        nullable=False,
        default=RecordStatus.ACTIVE,
    )

    task_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    consumption_metadata: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    refunded_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    line_items: Mapped[list["ConsumptionLineItem"]] = relationship(
        back_populates="consumption",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ConsumptionLineItem.batch_id",
    )

    @property
    def is_active(self) -> bool:
        return self.status == RecordStatus.ACTIVE

    @property
    def is_refunded(self) -> bool:
        return self.status == RecordStatus.DELETED

    @property
    def line_total(self) -> int:
        return sum(item.amount for item in self.line_items)

    def __repr__(self) -> str:
        return (
            f"<ConsumptionRecord {self.id}: user={self.user_id} "
            f"amount={self.amount} {self.status}>"
        )


class ConsumptionLineItem(Base):
    """
    The portion of one consumption drawn from one credit batch.

    Guarantees:
        - amount > 0 (C1).
        - At most one line per (consumption, batch) (C2).
    """

    __tablename__ = "credit_consumption_items"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_consumption_item_amount_positive"),
        UniqueConstraint("consumption_id", "batch_id", name="uq_consumption_item_batch"),
        Index("idx_consumption_item_batch", "batch_id"),
    )

    consumption_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("credit_consumptions.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("credit_batches.id"),
        nullable=False,
    )

    amount: Mapped[int] = mapped_column(
        nullable=False,
    )

    consumption: Mapped["ConsumptionRecord"] = relationship(
        back_populates="line_items",
    )

    batch: Mapped["CreditBatch"] = relationship(
        foreign_keys=[batch_id],
    )

    def __repr__(self) -> str:
        return f"<ConsumptionLineItem batch={self.batch_id} amount={self.amount}>"
