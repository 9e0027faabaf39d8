"""
Module: credit_kernel.selectors.task_selector
Responsibility: Read-only media task queries -- single task lookup, active
    task counts for the concurrency limit, failed tasks for reconciliation,
    and the charges linked to a task.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select

from credit_kernel.models.consumption import ConsumptionRecord
from credit_kernel.models.credit_batch import RecordStatus
from credit_kernel.models.media_task import ACTIVE_STATUSES, MediaTask, TaskStatus
from credit_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TaskView:
    """A media task as seen by readers."""

    task_id: UUID
    user_id: str
    platform: str
    video_url: str
    output_type: str
    target_lang: str | None
    status: str
    progress: int
    cost_credits: int
    translation_prepaid: bool
    consumption_id: UUID
    error_message: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ChargeView:
    """A consumption record charged to a task."""

    consumption_id: UUID
    reason: str
    amount: int
    status: str


class TaskSelector(BaseSelector[MediaTask]):
    """Selector for media tasks and their charges."""

    def get(self, task_id: UUID) -> TaskView | None:
        task = self.session.get(MediaTask, task_id)
        return self._to_view(task) if task is not None else None

    def tasks(self, user_id: str, status: TaskStatus | None = None) -> list[TaskView]:
        """Tasks of a user, newest first."""
        stmt = select(MediaTask).where(MediaTask.user_id == user_id)
        if status is not None:
            stmt = stmt.where(MediaTask.status == status)
        stmt = stmt.order_by(MediaTask.created_at.desc(), MediaTask.id)
        return [self._to_view(t) for t in self.session.scalars(stmt)]

    def count_active(self, user_id: str) -> int:
        """Number of unfinished tasks counting against the concurrency limit."""
        return int(
            self.session.execute(
                select(func.count(MediaTask.id)).where(
                    MediaTask.user_id == user_id,
                    MediaTask.status.in_([s.value for s in ACTIVE_STATUSES]),
                )
            ).scalar_one()
        )

    def failed_task_ids(self, user_id: str | None = None) -> list[UUID]:
        """IDs of failed tasks, oldest first (optionally for one user)."""
        stmt = select(MediaTask.id).where(MediaTask.status == TaskStatus.FAILED)
        if user_id is not None:
            stmt = stmt.where(MediaTask.user_id == user_id)
        stmt = stmt.order_by(MediaTask.created_at, MediaTask.id)
        return list(self.session.scalars(stmt))

    def charges(self, task_id: UUID) -> list[ChargeView]:
        """Every consumption charged to a task, oldest first."""
        stmt = (
            select(ConsumptionRecord)
            .where(ConsumptionRecord.task_id == task_id)
            .order_by(ConsumptionRecord.created_at, ConsumptionRecord.id)
        )
        return [
            ChargeView(
                consumption_id=r.id,
                reason=r.reason,
                amount=r.amount,
                status=RecordStatus(r.status).value,
            )
            for r in self.session.scalars(stmt)
        ]

    def active_charge_ids(self, task_id: UUID) -> list[UUID]:
        """Charges of a task that have not been refunded."""
        stmt = (
            select(ConsumptionRecord.id)
            .where(
                ConsumptionRecord.task_id == task_id,
                ConsumptionRecord.status == RecordStatus.ACTIVE,
            )
            .order_by(ConsumptionRecord.created_at, ConsumptionRecord.id)
        )
        return list(self.session.scalars(stmt))

    @staticmethod
    def _to_view(task: MediaTask) -> TaskView:
        return TaskView(
            task_id=task.id,
            user_id=task.user_id,
            platform=task.platform,
            video_url=task.video_url,
            output_type=task.output_type,
            target_lang=task.target_lang,
            status=TaskStatus(task.status).value,
            progress=task.progress,
            cost_credits=task.cost_credits,
            translation_prepaid=task.translation_prepaid,
            consumption_id=task.consumption_id,
            error_message=task.error_message,
            created_at=task.created_at,
            updated_at=task.updated_at,
        )
