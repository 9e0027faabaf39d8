"""
Module: credit_kernel.models.media_task
Responsibility: ORM persistence for media tasks -- the billable unit of work
    (subtitle extraction, translation, video download).
Architecture position: Kernel > Models.  May import from db/ and sibling
    models only.

Invariants enforced:
    T1 -- Mandatory charge link.  consumption_id is NOT NULL and references
          the task's current charge: the submission charge, replaced by the
          translation charge when a separately paid translation starts.  It
          is the charge refunded if the task fails.
    T2 -- Validated lifecycle.  Status changes follow VALID_TRANSITIONS;
          COMPLETED and FAILED are terminal.
    T3 -- Prepaid translation.  translation_prepaid is set when the
          submission quote already included translation; such a task moves
          PROCESSING -> TRANSLATING without a second charge.
    T4 -- Progress is a percentage.  0 <= progress <= 100 (CHECK constraint).

Failure modes:
    - IntegrityError on a missing or dangling consumption_id (T1).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credit_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from credit_kernel.models.consumption import ConsumptionRecord


class TaskStatus(str, Enum):
    """Lifecycle status of a media task."""

    PENDING = "pending"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    FAILED = "failed"


VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.PROCESSING, TaskStatus.FAILED}),
    TaskStatus.PROCESSING: frozenset(
        {
            TaskStatus.EXTRACTED,
            TaskStatus.TRANSLATING,
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
        }
    ),
    TaskStatus.EXTRACTED: frozenset({TaskStatus.TRANSLATING, TaskStatus.COMPLETED}),
    TaskStatus.TRANSLATING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
}

# Statuses that count against the concurrent task limit
ACTIVE_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.PENDING, TaskStatus.PROCESSING, TaskStatus.TRANSLATING}
)

TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED}
)


def can_transition(from_status: str, to_status: str) -> bool:
    """True if a task may move from ``from_status`` to ``to_status``."""
    return TaskStatus(to_status) in VALID_TRANSITIONS[TaskStatus(from_status)]


class MediaTask(TimestampedBase):
    """
    A media processing job paid for with credits.

    Contract:
        Inserted together with its consumption record.  Every charge for
        the task is linked back through ConsumptionRecord.task_id;
        consumption_id points at the one a failure refunds.
    """

    __tablename__ = "media_tasks"

    __table_args__ = (
        CheckConstraint(
            "progress >= 0 AND progress <= 100", name="ck_media_task_progress_range"
        ),
        Index("idx_media_task_user_status", "user_id", "status"),
        Index("idx_media_task_consumption", "consumption_id"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )

    platform: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    video_url: Mapped[str] = mapped_column(
        String(2000),
        nullable=False,
    )

    output_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    target_lang: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    status: Mapped[TaskStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TaskStatus.PENDING,
    )

    progress: Mapped[int] = mapped_column(
        nullable=False,
        default=0,
    )

    cost_credits: Mapped[int] = mapped_column(
        nullable=False,
    )

    # INVARIANT T3
    translation_prepaid: Mapped[bool] = mapped_column(
        nullable=False,
        default=False,
    )

    # INVARIANT T1
    consumption_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("credit_consumptions.id"),
        nullable=False,
    )

    error_message: Mapped[str | None] = mapped_column(
        String(2000),
        nullable=True,
    )

    result_metadata: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    consumption: Mapped["ConsumptionRecord"] = relationship(
        foreign_keys=[consumption_id],
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<MediaTask {self.id}: user={self.user_id} {self.platform} {self.status}>"
