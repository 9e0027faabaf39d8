"""
ReconciliationService -- audit and repair of task charges.

Composes read queries over tasks and charges with CreditLedger (refunds) to
check and restore the core invariant: the current charge of a failed task
is refunded, exactly once.

Architecture: Kernel > Services -- imperative shell.
    Unlike the request-path services this one owns its transactions: audit()
    reads through one short-lived session and refund_failed_tasks() opens one
    transaction per task, so one bad task never rolls back the others.

Checks performed by audit():
    - Failed tasks whose current charge is still ACTIVE (repairable).
    - Unfailed tasks whose current charge is DELETED (refunded but still
      running or completed; needs a human).
    - Consumption records whose line items do not sum to the amount.
    - Batches with remaining credits outside 0..credits.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, sessionmaker

from credit_kernel.domain.clock import Clock, SystemClock
from credit_kernel.logging_config import LogContext, get_logger
from credit_kernel.models.consumption import ConsumptionLineItem, ConsumptionRecord
from credit_kernel.models.credit_batch import CreditBatch, RecordStatus
from credit_kernel.models.media_task import MediaTask, TaskStatus
from credit_kernel.services.ledger_service import CreditLedger

logger = get_logger("services.reconciliation")


@dataclass(frozen=True)
class UnrefundedCharge:
    """An ACTIVE charge belonging to a failed task."""

    task_id: UUID
    user_id: str
    consumption_id: UUID
    amount: int


@dataclass(frozen=True)
class PrematureRefund:
    """A task that did not fail but whose current charge was refunded."""

    task_id: UUID
    user_id: str
    task_status: str
    consumption_id: UUID


@dataclass(frozen=True)
class LineItemMismatch:
    consumption_id: UUID
    amount: int
    line_total: int


@dataclass(frozen=True)
class BatchOutOfRange:
    batch_id: UUID
    credits: int
    remaining_credits: int


@dataclass(frozen=True)
class ReconciliationReport:
    """Findings of one audit run."""

    unrefunded_charges: tuple[UnrefundedCharge, ...] = ()
    premature_refunds: tuple[PrematureRefund, ...] = ()
    line_item_mismatches: tuple[LineItemMismatch, ...] = ()
    batches_out_of_range: tuple[BatchOutOfRange, ...] = ()

    @property
    def is_clean(self) -> bool:
        return not (
            self.unrefunded_charges
            or self.premature_refunds
            or self.line_item_mismatches
            or self.batches_out_of_range
        )

    @property
    def unrefunded_credits(self) -> int:
        return sum(c.amount for c in self.unrefunded_charges)

    @property
    def affected_task_ids(self) -> list[UUID]:
        """Failed tasks with something to refund, in discovery order."""
        seen: dict[UUID, None] = {}
        for charge in self.unrefunded_charges:
            seen.setdefault(charge.task_id, None)
        return list(seen)


@dataclass
class RefundSummary:
    """Outcome of a repair run."""

    tasks_checked: int = 0
    tasks_repaired: int = 0
    charges_refunded: int = 0
    credits_restored: int = 0
    errors: list[tuple[UUID, str]] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)


class ReconciliationService:
    """Audit and repair of the failed-task refund invariant.

    Contract:
        - ``audit()`` is read-only.
        - ``refund_failed_tasks()`` commits one transaction per task and
          keeps going when a task errors; errors are logged and counted.

    Non-goals:
        - Does NOT guess task/charge links from metadata.  Links are written
          with the task; a charge without one is reported, not matched.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    # -----------------------------------------------------------------
    # Audit
    # -----------------------------------------------------------------

    def audit(self, user_id: str | None = None) -> ReconciliationReport:
        """Scan for invariant violations, optionally for one user."""
        with self._session_factory() as session:
            report = ReconciliationReport(
                unrefunded_charges=tuple(self._unrefunded_charges(session, user_id)),
                premature_refunds=tuple(self._premature_refunds(session, user_id)),
                line_item_mismatches=tuple(self._line_item_mismatches(session, user_id)),
                batches_out_of_range=tuple(self._batches_out_of_range(session, user_id)),
            )

        logger.info(
            "reconciliation_audit_completed",
            extra={
                "user_id": user_id,
                "unrefunded_charges": len(report.unrefunded_charges),
                "unrefunded_credits": report.unrefunded_credits,
                "premature_refunds": len(report.premature_refunds),
                "line_item_mismatches": len(report.line_item_mismatches),
                "batches_out_of_range": len(report.batches_out_of_range),
            },
        )
        return report

    def _unrefunded_charges(
        self, session: Session, user_id: str | None
    ) -> list[UnrefundedCharge]:
        stmt = (
            select(
                MediaTask.id,
                MediaTask.user_id,
                ConsumptionRecord.id,
                ConsumptionRecord.amount,
            )
            .join(ConsumptionRecord, ConsumptionRecord.id == MediaTask.consumption_id)
            .where(
                MediaTask.status == TaskStatus.FAILED,
                ConsumptionRecord.status == RecordStatus.ACTIVE,
            )
            .order_by(MediaTask.created_at, MediaTask.id)
        )
        if user_id is not None:
            stmt = stmt.where(MediaTask.user_id == user_id)
        return [
            UnrefundedCharge(task_id=t, user_id=u, consumption_id=c, amount=a)
            for t, u, c, a in session.execute(stmt).all()
        ]

    def _premature_refunds(
        self, session: Session, user_id: str | None
    ) -> list[PrematureRefund]:
        stmt = (
            select(MediaTask.id, MediaTask.user_id, MediaTask.status, ConsumptionRecord.id)
            .join(ConsumptionRecord, ConsumptionRecord.id == MediaTask.consumption_id)
            .where(
                MediaTask.status != TaskStatus.FAILED,
                ConsumptionRecord.status == RecordStatus.DELETED,
            )
            .order_by(MediaTask.created_at, MediaTask.id)
        )
        if user_id is not None:
            stmt = stmt.where(MediaTask.user_id == user_id)
        return [
            PrematureRefund(task_id=t, user_id=u, task_status=s, consumption_id=c)
            for t, u, s, c in session.execute(stmt).all()
        ]

    def _line_item_mismatches(
        self, session: Session, user_id: str | None
    ) -> list[LineItemMismatch]:
        line_total = func.coalesce(func.sum(ConsumptionLineItem.amount), 0)
        stmt = (
            select(ConsumptionRecord.id, ConsumptionRecord.amount, line_total)
            .outerjoin(
                ConsumptionLineItem,
                ConsumptionLineItem.consumption_id == ConsumptionRecord.id,
            )
            .group_by(ConsumptionRecord.id, ConsumptionRecord.amount)
            .having(line_total != ConsumptionRecord.amount)
            .order_by(ConsumptionRecord.id)
        )
        if user_id is not None:
            stmt = stmt.where(ConsumptionRecord.user_id == user_id)
        return [
            LineItemMismatch(consumption_id=c, amount=a, line_total=int(total))
            for c, a, total in session.execute(stmt).all()
        ]

    def _batches_out_of_range(
        self, session: Session, user_id: str | None
    ) -> list[BatchOutOfRange]:
        stmt = (
            select(CreditBatch.id, CreditBatch.credits, CreditBatch.remaining_credits)
            .where(
                or_(
                    CreditBatch.remaining_credits < 0,
                    CreditBatch.remaining_credits > CreditBatch.credits,
                )
            )
            .order_by(CreditBatch.id)
        )
        if user_id is not None:
            stmt = stmt.where(CreditBatch.user_id == user_id)
        return [
            BatchOutOfRange(batch_id=b, credits=c, remaining_credits=r)
            for b, c, r in session.execute(stmt).all()
        ]

    # -----------------------------------------------------------------
    # Repair
    # -----------------------------------------------------------------

    def refund_failed_tasks(
        self,
        user_id: str | None = None,
        dry_run: bool = False,
    ) -> RefundSummary:
        """Refund the current charge of every failed task that still has it active.

        Each task is repaired in its own transaction.  A task that raises is
        rolled back, logged with its traceback and counted in
        ``RefundSummary.errors``; the run continues with the next task.
        """
        task_ids = self.audit(user_id).affected_task_ids
        summary = RefundSummary(tasks_checked=len(task_ids))

        if dry_run:
            logger.info(
                "reconciliation_dry_run",
                extra={"user_id": user_id, "tasks_to_repair": len(task_ids)},
            )
            return summary

        for task_id in task_ids:
            with LogContext.bind(task_id=task_id):
                try:
                    refunded, restored = self._repair_task(task_id)
                except Exception as exc:
                    logger.exception(
                        "task_repair_failed",
                        extra={"task_id": str(task_id)},
                    )
                    summary.errors.append((task_id, str(exc)))
                    continue

            if refunded:
                summary.tasks_repaired += 1
                summary.charges_refunded += refunded
                summary.credits_restored += restored

        logger.info(
            "reconciliation_repair_completed",
            extra={
                "user_id": user_id,
                "tasks_checked": summary.tasks_checked,
                "tasks_repaired": summary.tasks_repaired,
                "charges_refunded": summary.charges_refunded,
                "credits_restored": summary.credits_restored,
                "errors": summary.error_count,
            },
        )
        return summary

    def _repair_task(self, task_id: UUID) -> tuple[int, int]:
        """Refund the current charge of one failed task; returns (count, credits)."""
        with self._session_factory.begin() as session:
            # Serializes with TaskService.fail_task on the same row
            task = session.execute(
                select(MediaTask)
                .where(MediaTask.id == task_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if task is None or task.status != TaskStatus.FAILED:
                return 0, 0

            result = CreditLedger(session, self._clock).refund(task.consumption_id)
            if not result.applied:
                return 0, 0

            logger.info(
                "task_charge_repaired",
                extra={
                    "task_id": str(task_id),
                    "user_id": task.user_id,
                    "consumption_id": str(task.consumption_id),
                    "credits_restored": result.credits_restored,
                },
            )
            return 1, result.credits_restored
