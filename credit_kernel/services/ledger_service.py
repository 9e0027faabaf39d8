"""
CreditLedger -- grants, debits, refunds and balances of user credits.

Responsibility:
    The single write path for credit batches and consumption records.
    consume() debits batches and records exactly which batches paid;
    refund() walks those line items back; grant() mints new batches.

Architecture position:
    Kernel > Services -- imperative shell.  Reads through LedgerSelector,
    writes ORM rows, flushes into the caller's transaction.

Invariants enforced:
    L1 -- No overdraft.  consume() debits only when the locked, spendable
          batches cover the amount; otherwise it raises before mutating.
    L2 -- Exact provenance.  Every debit writes one line item per batch it
          drew from, and the line items sum to the debited amount.
    L3 -- Idempotent refund.  A refund applies at most once per record;
          refunding a DELETED record is a no-op, not an error.
    L4 -- Atomic refund.  Batch restoration and the ACTIVE -> DELETED flip
          happen in the caller's single transaction.
    L5 -- Deadlock-free locking.  Within a call, batches are locked in one
          primary-key-ordered statement; refund locks the consumption record
          before its batches.  Callers refund at most one record per
          transaction (TaskService, ReconciliationService), so no transaction
          ever holds a batch while waiting for a lower-keyed one.

Failure modes:
    - InvalidAmountError: amount is not a positive integer.
    - InsufficientBalanceError: spendable balance < amount (no mutation).
    - BatchNotFoundError: revoke() of an unknown batch.
    - Refund of a missing record is logged as a data-integrity warning and
      reported as RefundStatus.MISSING; it does not raise.

Consumption order:
    Soonest-expiring batches are spent first, never-expiring batches last;
    ties are broken by creation time, then by batch id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from credit_kernel.domain.clock import Clock
from credit_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientBalanceError,
    InvalidAmountError,
)
from credit_kernel.logging_config import get_logger
from credit_kernel.models.consumption import ConsumptionLineItem, ConsumptionRecord
from credit_kernel.models.credit_batch import CreditBatch, GrantScene, RecordStatus
from credit_kernel.selectors.ledger_selector import LedgerSelector, spendable_batch_filter
from credit_kernel.services.base import BaseService
from credit_kernel.utils.idempotency import generate_transaction_no

logger = get_logger("services.ledger")

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


class RefundStatus(str, Enum):
    """Outcome of a refund request."""

    REFUNDED = "refunded"
    ALREADY_REFUNDED = "already_refunded"
    MISSING = "missing"


@dataclass(frozen=True)
class RefundResult:
    """Immutable result of a refund request."""

    consumption_id: UUID
    status: RefundStatus
    credits_restored: int = 0

    @property
    def applied(self) -> bool:
        return self.status == RefundStatus.REFUNDED


def _validate_amount(amount: Any) -> None:
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmountError(amount)


def _consumption_order(batch: CreditBatch) -> tuple:
    return (
        batch.expires_at is None,
        batch.expires_at or _FAR_FUTURE,
        batch.created_at,
        str(batch.id),
    )


class CreditLedger(BaseService[CreditBatch]):
    """Write-side service for credit batches and consumption records.

    Contract:
        Every method runs inside the caller's transaction and only flushes.
        A failed consume() leaves no trace once the caller rolls back; it
        also performs no writes before raising.

    Non-goals:
        - Does NOT decide prices or grant sizes (see TaskService,
          GrantService, CheckinService).
        - Does NOT refund by task; TaskService.fail_task() resolves a task to
          its charges and calls refund() for each.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._selector = LedgerSelector(session)

    # =========================================================================
    # Grants
    # =========================================================================

    def grant_once(
        self,
        user_id: str,
        credits: int,
        scene: GrantScene,
        *,
        expires_at: datetime | None = None,
        description: str | None = None,
        metadata: dict | None = None,
        order_no: str | None = None,
        idempotency_key: str | None = None,
    ) -> tuple[CreditBatch, bool]:
        """Create a new credit batch, reporting whether one was created.

        With an idempotency_key, a repeated grant returns ``(batch, False)``
        where batch is the one created by the first call.

        Raises:
            InvalidAmountError: If credits is not a positive integer.
        """
        _validate_amount(credits)

        if idempotency_key is not None:
            existing = self._find_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.info(
                    "grant_already_applied",
                    extra={
                        "user_id": user_id,
                        "batch_id": str(existing.id),
                        "idempotency_key": idempotency_key,
                    },
                )
                return existing, False

        now = self.clock.now()
        batch = CreditBatch(
            id=uuid4(),
            user_id=user_id,
            transaction_no=generate_transaction_no("GRT", now),
            scene=GrantScene(scene),
            credits=credits,
            remaining_credits=credits,
            status=RecordStatus.ACTIVE,
            expires_at=expires_at,
            order_no=order_no,
            description=description,
            idempotency_key=idempotency_key,
            batch_metadata=metadata,
            created_at=now,
            updated_at=now,
        )

        if idempotency_key is None:
            self.session.add(batch)
            self.session.flush()
        else:
            # A concurrent grant with the same key wins via the unique index
            try:
                with self.session.begin_nested():
                    self.session.add(batch)
            except IntegrityError:
                existing = self._find_by_idempotency_key(idempotency_key)
                if existing is None:
                    raise
                logger.info(
                    "grant_race_lost",
                    extra={
                        "user_id": user_id,
                        "batch_id": str(existing.id),
                        "idempotency_key": idempotency_key,
                    },
                )
                return existing, False

        logger.info(
            "credits_granted",
            extra={
                "user_id": user_id,
                "batch_id": str(batch.id),
                "credits": credits,
                "scene": batch.scene,
                "expires_at": expires_at,
            },
        )
        return batch, True

    def grant(
        self,
        user_id: str,
        credits: int,
        scene: GrantScene,
        **kwargs: Any,
    ) -> CreditBatch:
        """Create a new credit batch (see grant_once for keyword arguments)."""
        batch, _ = self.grant_once(user_id, credits, scene, **kwargs)
        return batch

    def revoke(self, batch_id: UUID) -> CreditBatch:
        """Mark a batch deleted so it no longer counts toward the balance.

        Revoking an already deleted batch is a no-op.

        Raises:
            BatchNotFoundError: If the batch does not exist.
        """
        batch = self.session.execute(
            select(CreditBatch)
            .where(CreditBatch.id == batch_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_id))

        if batch.status != RecordStatus.DELETED:
            batch.status = RecordStatus.DELETED
            batch.updated_at = self.clock.now()
            self.session.flush()
            logger.info(
                "batch_revoked",
                extra={
                    "user_id": batch.user_id,
                    "batch_id": str(batch.id),
                    "remaining_credits": batch.remaining_credits,
                },
            )
        return batch

    # =========================================================================
    # Debits
    # =========================================================================

    def consume(
        self,
        user_id: str,
        amount: int,
        reason: str,
        *,
        task_id: UUID | None = None,
        description: str | None = None,
        metadata: dict | None = None,
    ) -> ConsumptionRecord:
        """Debit ``amount`` credits from the user's spendable batches.

        Preconditions:
            - amount is a positive integer.

        Postconditions:
            - One ACTIVE ConsumptionRecord exists with line items summing to
              ``amount`` (L2), and the drawn batches are decremented.

        Raises:
            InvalidAmountError: If amount is not a positive integer.
            InsufficientBalanceError: If the spendable balance is too low.
        """
        _validate_amount(amount)
        now = self.clock.now()

        # L5: lock in primary-key order, spend in expiry order
        locked = list(
            self.session.scalars(
                select(CreditBatch)
                .where(spendable_batch_filter(user_id, now))
                .where(CreditBatch.remaining_credits > 0)
                .order_by(CreditBatch.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        )

        available = sum(b.remaining_credits for b in locked)
        if available < amount:
            logger.info(
                "consume_rejected_insufficient_balance",
                extra={"user_id": user_id, "required": amount, "available": available},
            )
            raise InsufficientBalanceError(user_id, amount, available)

        record = ConsumptionRecord(
            id=uuid4(),
            user_id=user_id,
            transaction_no=generate_transaction_no("CON", now),
            reason=reason,
            amount=amount,
            status=RecordStatus.ACTIVE,
            task_id=task_id,
            description=description,
            consumption_metadata=metadata,
            created_at=now,
            updated_at=now,
        )

        outstanding = amount
        for batch in sorted(locked, key=_consumption_order):
            if outstanding == 0:
                break
            drawn = min(batch.remaining_credits, outstanding)
            batch.remaining_credits -= drawn
            batch.updated_at = now
            record.line_items.append(
                ConsumptionLineItem(id=uuid4(), batch_id=batch.id, amount=drawn)
            )
            outstanding -= drawn

        self.session.add(record)
        self.session.flush()

        logger.info(
            "credits_consumed",
            extra={
                "user_id": user_id,
                "consumption_id": str(record.id),
                "amount": amount,
                "reason": reason,
                "task_id": str(task_id) if task_id else None,
                "batch_count": len(record.line_items),
            },
        )
        return record

    # =========================================================================
    # Refunds
    # =========================================================================

    def refund(self, consumption_id: UUID) -> RefundResult:
        """Reverse a consumption, restoring each line item to its batch.

        Postconditions:
            - The record is DELETED and every batch it drew from has been
              credited back exactly once (L3, L4).

        Returns:
            RefundResult.  REFUNDED on the first call, ALREADY_REFUNDED on
            any later call, MISSING if the record does not exist.
        """
        record = self.session.execute(
            select(ConsumptionRecord)
            .where(ConsumptionRecord.id == consumption_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if record is None:
            logger.warning(
                "refund_missing_record",
                extra={"consumption_id": str(consumption_id)},
            )
            return RefundResult(consumption_id, RefundStatus.MISSING)

        if record.status == RecordStatus.DELETED:
            logger.info(
                "refund_already_applied",
                extra={
                    "user_id": record.user_id,
                    "consumption_id": str(consumption_id),
                },
            )
            return RefundResult(consumption_id, RefundStatus.ALREADY_REFUNDED)

        restore = {item.batch_id: item.amount for item in record.line_items}
        now = self.clock.now()

        batches = list(
            self.session.scalars(
                select(CreditBatch)
                .where(CreditBatch.id.in_(list(restore)))
                .order_by(CreditBatch.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        )
        for batch in batches:
            batch.remaining_credits += restore[batch.id]
            batch.updated_at = now

        record.status = RecordStatus.DELETED
        record.refunded_at = now
        record.updated_at = now
        self.session.flush()

        restored = sum(restore[b.id] for b in batches)
        logger.info(
            "consumption_refunded",
            extra={
                "user_id": record.user_id,
                "consumption_id": str(consumption_id),
                "credits_restored": restored,
                "batch_count": len(batches),
            },
        )
        return RefundResult(consumption_id, RefundStatus.REFUNDED, restored)

    # =========================================================================
    # Reads
    # =========================================================================

    def balance(self, user_id: str) -> int:
        """Sum of remaining credits over active, unexpired batches."""
        return self._selector.balance(user_id, self.clock.now())

    def _find_by_idempotency_key(self, key: str) -> CreditBatch | None:
        return self.session.execute(
            select(CreditBatch).where(CreditBatch.idempotency_key == key)
        ).scalar_one_or_none()
