"""
Module: credit_kernel.selectors.ledger_selector
Responsibility: Read-only credit queries -- spendable balance, batch listings,
    consumption history with line items, and refund summaries.
Architecture position: Kernel > Selectors.  May import from models/ and
    selectors/base.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Balance definition: the sum of remaining_credits over batches that are
      ACTIVE and unexpired at ``as_of`` (never-expiring batches always count).
    - Read-only: no locks are taken; writers use their own locked reads.

Failure modes:
    - Returns zero / empty results for users without any rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, or_, select

from credit_kernel.models.consumption import ConsumptionLineItem, ConsumptionRecord
from credit_kernel.models.credit_batch import CreditBatch, GrantScene, RecordStatus
from credit_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class BatchView:
    """A credit batch as seen by readers."""

    batch_id: UUID
    transaction_no: str
    scene: str
    credits: int
    remaining_credits: int
    status: str
    expires_at: datetime | None
    created_at: datetime
    description: str | None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class LineItemView:
    """One (batch, amount) pair of a consumption."""

    batch_id: UUID
    amount: int


@dataclass(frozen=True)
class ConsumptionView:
    """A consumption record with its line items."""

    consumption_id: UUID
    transaction_no: str
    reason: str
    amount: int
    status: str
    task_id: UUID | None
    description: str | None
    created_at: datetime
    refunded_at: datetime | None
    line_items: tuple[LineItemView, ...]

    @property
    def is_refunded(self) -> bool:
        return self.status == RecordStatus.DELETED

    @property
    def line_total(self) -> int:
        return sum(item.amount for item in self.line_items)


@dataclass(frozen=True)
class ConsumptionSummary:
    """Totals over every consumption of one user."""

    user_id: str
    record_count: int
    total_consumed: int
    refunded: int
    active: int

    @property
    def net_consumed(self) -> int:
        return self.active


def spendable_batch_filter(user_id: str, as_of: datetime) -> ColumnElement[bool]:
    """WHERE clause selecting a user's active, unexpired batches."""
    return and_(
        CreditBatch.user_id == user_id,
        CreditBatch.status == RecordStatus.ACTIVE,
        or_(CreditBatch.expires_at.is_(None), CreditBatch.expires_at > as_of),
    )


class LedgerSelector(BaseSelector[CreditBatch]):
    """
    Selector for credit balances and consumption history.

    Guarantees:
        - balance() is an integer; never negative given batch invariant B2.
        - consumption history is ordered newest first, as operators read it.
    """

    def balance(self, user_id: str, as_of: datetime) -> int:
        """Sum of remaining credits over active, unexpired batches."""
        total = self.session.execute(
            select(func.coalesce(func.sum(CreditBatch.remaining_credits), 0)).where(
                spendable_batch_filter(user_id, as_of)
            )
        ).scalar_one()
        return int(total)

    def batches(self, user_id: str, include_deleted: bool = False) -> list[BatchView]:
        """All batches of a user, oldest first."""
        stmt = select(CreditBatch).where(CreditBatch.user_id == user_id)
        if not include_deleted:
            stmt = stmt.where(CreditBatch.status == RecordStatus.ACTIVE)
        stmt = stmt.order_by(CreditBatch.created_at, CreditBatch.id)
        return [self._to_batch_view(b) for b in self.session.scalars(stmt)]

    def spendable_batches(self, user_id: str, as_of: datetime) -> list[BatchView]:
        """Batches that currently count toward the balance."""
        stmt = (
            select(CreditBatch)
            .where(spendable_batch_filter(user_id, as_of))
            .where(CreditBatch.remaining_credits > 0)
            .order_by(
                CreditBatch.expires_at.asc().nulls_last(),
                CreditBatch.created_at,
                CreditBatch.id,
            )
        )
        return [self._to_batch_view(b) for b in self.session.scalars(stmt)]

    def consumption(self, consumption_id: UUID) -> ConsumptionView | None:
        record = self.session.get(ConsumptionRecord, consumption_id)
        if record is None:
            return None
        return self._to_consumption_view(record)

    def consumptions(
        self,
        user_id: str,
        status: RecordStatus | None = None,
    ) -> list[ConsumptionView]:
        """Consumption history of a user, newest first."""
        stmt = select(ConsumptionRecord).where(ConsumptionRecord.user_id == user_id)
        if status is not None:
            stmt = stmt.where(ConsumptionRecord.status == status)
        stmt = stmt.order_by(ConsumptionRecord.created_at.desc(), ConsumptionRecord.id)
        return [self._to_consumption_view(r) for r in self.session.scalars(stmt)]

    def line_items(self, consumption_id: UUID) -> list[LineItemView]:
        stmt = (
            select(ConsumptionLineItem)
            .where(ConsumptionLineItem.consumption_id == consumption_id)
            .order_by(ConsumptionLineItem.batch_id)
        )
        return [
            LineItemView(batch_id=item.batch_id, amount=item.amount)
            for item in self.session.scalars(stmt)
        ]

    def consumption_summary(self, user_id: str) -> ConsumptionSummary:
        """Consumed / refunded / still-charged totals for a user."""
        rows = self.session.execute(
            select(
                ConsumptionRecord.status,
                func.count(ConsumptionRecord.id),
                func.coalesce(func.sum(ConsumptionRecord.amount), 0),
            )
            .where(ConsumptionRecord.user_id == user_id)
            .group_by(ConsumptionRecord.status)
        ).all()

        counts = {status: (int(count), int(amount)) for status, count, amount in rows}
        active_count, active = counts.get(RecordStatus.ACTIVE.value, (0, 0))
        refunded_count, refunded = counts.get(RecordStatus.DELETED.value, (0, 0))
        return ConsumptionSummary(
            user_id=user_id,
            record_count=active_count + refunded_count,
            total_consumed=active + refunded,
            refunded=refunded,
            active=active,
        )

    # =========================================================================
    # Mapping
    # =========================================================================

    @staticmethod
    def _to_batch_view(batch: CreditBatch) -> BatchView:
        return BatchView(
            batch_id=batch.id,
            transaction_no=batch.transaction_no,
            scene=GrantScene(batch.scene).value,
            credits=batch.credits,
            remaining_credits=batch.remaining_credits,
            status=RecordStatus(batch.status).value,
            expires_at=batch.expires_at,
            created_at=batch.created_at,
            description=batch.description,
            idempotency_key=batch.idempotency_key,
        )

    @staticmethod
    def _to_consumption_view(record: ConsumptionRecord) -> ConsumptionView:
        return ConsumptionView(
            consumption_id=record.id,
            transaction_no=record.transaction_no,
            reason=record.reason,
            amount=record.amount,
            status=RecordStatus(record.status).value,
            task_id=record.task_id,
            description=record.description,
            created_at=record.created_at,
            refunded_at=record.refunded_at,
            line_items=tuple(
                LineItemView(batch_id=item.batch_id, amount=item.amount)
                for item in record.line_items
            ),
        )
