"""
TaskService -- media tasks and the credits they are charged.

Responsibility:
    Creates media tasks together with their charge, drives the task
    lifecycle, charges translation on extracted tasks, and refunds the
    undelivered charge of a task that fails.

Architecture position:
    Kernel > Services -- imperative shell.  Consumes CreditLedger for debits
    and refunds, TaskSelector for reads, and pricing for quotes.

Invariants enforced:
    T1 -- Mandatory, atomic charge link.  The task row and its consumption
          record are written in one savepoint; the task cannot exist without
          the charge, and a rejected submission leaves neither behind.
    T2 -- Validated lifecycle (see models.media_task.VALID_TRANSITIONS).
    T3 -- Failure refunds the task's current charge, exactly once.  A task
          failing during a separately paid translation keeps its extraction
          charge, which was delivered.  Task rows are locked (FOR UPDATE) so
          two workers failing the same task serialize; refunds are
          idempotent besides.

Lock order:
    task row, then consumption record, then credit batches in primary-key
    order.  Every transaction refunds at most one record.

Failure modes:
    - UnsupportedPlatformError: the URL is not YouTube or TikTok.
    - InsufficientBalanceError: not enough credits for the quote.
    - ActiveTaskLimitError: the user already has too many unfinished tasks.
    - TaskNotFoundError / InvalidTaskTransitionError on lifecycle calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.policy import LedgerPolicy
from credit_kernel.domain.pricing import (
    OutputType,
    detect_platform,
    includes_translation,
    quote_task_cost,
)
from credit_kernel.exceptions import (
    ActiveTaskLimitError,
    InvalidTaskTransitionError,
    TaskNotFoundError,
)
from credit_kernel.logging_config import LogContext, get_logger
from credit_kernel.models.consumption import ConsumptionRecord
from credit_kernel.models.media_task import MediaTask, TaskStatus, can_transition
from credit_kernel.selectors.task_selector import TaskSelector
from credit_kernel.services.base import BaseService
from credit_kernel.services.ledger_service import CreditLedger, RefundResult

logger = get_logger("services.task")

TASK_CHARGE_REASON = "media-task"
TRANSLATION_CHARGE_REASON = "media-task-translation"


@dataclass(frozen=True)
class TaskFailureResult:
    """Immutable result of failing a task."""

    task_id: UUID
    refund: RefundResult
    already_failed: bool = False

    @property
    def credits_restored(self) -> int:
        return self.refund.credits_restored


class TaskService(BaseService[MediaTask]):
    """Lifecycle and billing of media tasks.

    Contract:
        All methods run inside the caller's transaction and only flush.

    Non-goals:
        - Does NOT talk to media or translation providers; workers call the
          lifecycle methods as they make progress.
    """

    def __init__(
        self,
        session: Session,
        policy: LedgerPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._policy = policy
        self._ledger = CreditLedger(session, self.clock)
        self._selector = TaskSelector(session)

    # =========================================================================
    # Submission
    # =========================================================================

    def submit_task(
        self,
        user_id: str,
        video_url: str,
        output_type: OutputType | str = OutputType.SUBTITLE,
        target_lang: str | None = None,
    ) -> MediaTask:
        """Charge the quoted price and create the task, atomically (T1).

        Raises:
            UnsupportedPlatformError: If the URL is not a supported platform.
            InsufficientBalanceError: If the user cannot afford the quote.
            ActiveTaskLimitError: If the user has too many unfinished tasks.
        """
        platform = detect_platform(video_url)
        output = OutputType(output_type)
        cost = quote_task_cost(platform, output, target_lang, self._policy.pricing)
        task_id = uuid4()

        with LogContext.bind(user_id=user_id, task_id=task_id):
            with self.session.begin_nested():
                # Debit first: the batch locks serialize this user's submissions
                consumption = self._ledger.consume(
                    user_id,
                    cost,
                    TASK_CHARGE_REASON,
                    task_id=task_id,
                    description=f"Media task: {platform.value} {output.value}",
                    metadata={
                        "type": TASK_CHARGE_REASON,
                        "platform": platform.value,
                        "output_type": output.value,
                        "target_lang": target_lang,
                    },
                )

                limit = self._policy.concurrent_task_limit
                if self._selector.count_active(user_id) >= limit:
                    logger.info(
                        "task_rejected_active_limit",
                        extra={"user_id": user_id, "limit": limit},
                    )
                    raise ActiveTaskLimitError(user_id, limit)

                now = self.clock.now()
                task = MediaTask(
                    id=task_id,
                    user_id=user_id,
                    platform=platform.value,
                    video_url=video_url,
                    output_type=output.value,
                    target_lang=target_lang,
                    translation_prepaid=includes_translation(output, target_lang),
                    status=TaskStatus.PENDING,
                    progress=0,
                    cost_credits=cost,
                    consumption_id=consumption.id,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(task)

            logger.info(
                "task_submitted",
                extra={
                    "user_id": user_id,
                    "task_id": str(task_id),
                    "platform": platform.value,
                    "output_type": output.value,
                    "cost_credits": cost,
                    "consumption_id": str(consumption.id),
                },
            )
        return task

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_processing(self, task_id: UUID) -> MediaTask:
        task = self._load_for_update(task_id)
        self._transition(task, TaskStatus.PROCESSING)
        task.progress = max(task.progress, 10)
        self.session.flush()
        return task

    def update_progress(self, task_id: UUID, progress: int) -> MediaTask:
        """Record progress of an unfinished task.

        Raises:
            ValueError: If progress is outside 0..100.
            InvalidTaskTransitionError: If the task is already finished.
        """
        if not 0 <= progress <= 100:
            raise ValueError(f"progress must be within 0..100, got {progress}")
        task = self._load_for_update(task_id)
        if task.is_terminal:
            raise InvalidTaskTransitionError(str(task_id), task.status, task.status)
        task.progress = progress
        task.updated_at = self.clock.now()
        self.session.flush()
        return task

    def mark_extracted(self, task_id: UUID, result_metadata: dict | None = None) -> MediaTask:
        """Subtitles are available; the task may now be translated.

        A task with prepaid translation goes on to translating instead.
        """
        task = self._load_for_update(task_id)
        if task.translation_prepaid:
            raise InvalidTaskTransitionError(
                str(task_id), task.status, TaskStatus.EXTRACTED.value
            )
        self._transition(task, TaskStatus.EXTRACTED)
        task.progress = 100
        if result_metadata is not None:
            task.result_metadata = {**(task.result_metadata or {}), **result_metadata}
        self.session.flush()
        return task

    def mark_completed(self, task_id: UUID, result_metadata: dict | None = None) -> MediaTask:
        task = self._load_for_update(task_id)
        self._transition(task, TaskStatus.COMPLETED)
        task.progress = 100
        if result_metadata is not None:
            task.result_metadata = {**(task.result_metadata or {}), **result_metadata}
        self.session.flush()
        return task

    def start_translation(
        self, task_id: UUID, target_lang: str
    ) -> ConsumptionRecord | None:
        """Move a task to translating, charging for it unless it was prepaid.

        An extracted task pays the translation price; the new charge becomes
        the task's current charge, so a failed translation refunds only it.
        A task whose submission quote included translation (T3) starts
        translating straight from PROCESSING and is not charged again.

        Returns:
            The translation charge, or None for a prepaid task.

        Raises:
            InvalidTaskTransitionError: If the task cannot start translating.
            InsufficientBalanceError: If the user cannot afford translation.
        """
        task = self._load_for_update(task_id)
        if task.translation_prepaid:
            allowed_from = TaskStatus.PROCESSING
        else:
            allowed_from = TaskStatus.EXTRACTED
        if task.status != allowed_from:
            raise InvalidTaskTransitionError(
                str(task_id), task.status, TaskStatus.TRANSLATING.value
            )

        with LogContext.bind(user_id=task.user_id, task_id=task_id):
            consumption = None
            with self.session.begin_nested():
                if not task.translation_prepaid:
                    consumption = self._ledger.consume(
                        task.user_id,
                        self._policy.pricing.translation,
                        TRANSLATION_CHARGE_REASON,
                        task_id=task.id,
                        description=f"Subtitle translation: {target_lang}",
                        metadata={
                            "type": TRANSLATION_CHARGE_REASON,
                            "target_lang": target_lang,
                        },
                    )
                    task.consumption_id = consumption.id
                self._transition(task, TaskStatus.TRANSLATING)
                task.target_lang = target_lang
                task.progress = 0

            logger.info(
                "translation_started",
                extra={
                    "task_id": str(task_id),
                    "target_lang": target_lang,
                    "prepaid": task.translation_prepaid,
                    "consumption_id": str(task.consumption_id),
                },
            )
        return consumption

    def fail_task(self, task_id: UUID, error_message: str) -> TaskFailureResult:
        """Mark a task failed and refund its current charge (T3).

        Failing an already failed task changes nothing but still retries the
        refund, so a retry after a crash converges.

        Raises:
            TaskNotFoundError: If the task does not exist.
            InvalidTaskTransitionError: If the task cannot fail from its status.
        """
        task = self._load_for_update(task_id)

        with LogContext.bind(user_id=task.user_id, task_id=task_id):
            already_failed = task.status == TaskStatus.FAILED
            if not already_failed:
                self._transition(task, TaskStatus.FAILED)
                task.error_message = (error_message or "Unknown error")[:2000]

            refund = self._ledger.refund(task.consumption_id)
            self.session.flush()

            logger.info(
                "task_failed",
                extra={
                    "task_id": str(task_id),
                    "already_failed": already_failed,
                    "consumption_id": str(task.consumption_id),
                    "credits_restored": refund.credits_restored,
                },
            )
        return TaskFailureResult(
            task_id=task.id,
            refund=refund,
            already_failed=already_failed,
        )

    # =========================================================================
    # Internal
    # =========================================================================

    def _load_for_update(self, task_id: UUID) -> MediaTask:
        task = self.session.execute(
            select(MediaTask)
            .where(MediaTask.id == task_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    def _transition(self, task: MediaTask, to_status: TaskStatus) -> None:
        if not can_transition(task.status, to_status):
            raise InvalidTaskTransitionError(str(task.id), task.status, to_status.value)
        logger.info(
            "task_status_changed",
            extra={
                "task_id": str(task.id),
                "from_status": task.status,
                "to_status": to_status.value,
            },
        )
        task.status = to_status
        task.updated_at = self.clock.now()
