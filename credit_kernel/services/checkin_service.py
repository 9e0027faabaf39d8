"""
CheckinService -- daily check-in rewards.

Responsibility:
    Records at most one check-in per user per UTC day and awards the
    configured reward as a credit batch, in one transaction.

Architecture position:
    Kernel > Services.  Delegates batch creation to CreditLedger.

Invariants enforced:
    D1 -- One check-in per user per UTC day.  Checked up front for a clean
          error, and backed by the (user_id, checkin_date) unique constraint
          plus the per-day grant key for racing requests.
    D2 -- Reward and check-in row are written together or not at all.

Failure modes:
    - AlreadyCheckedInError: the user already checked in today.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.policy import GrantPolicy
from credit_kernel.exceptions import AlreadyCheckedInError
from credit_kernel.logging_config import get_logger
from credit_kernel.models.checkin import DailyCheckin
from credit_kernel.models.credit_batch import GrantScene
from credit_kernel.services.base import BaseService
from credit_kernel.services.grant_service import calculate_expiration
from credit_kernel.services.ledger_service import CreditLedger
from credit_kernel.utils.idempotency import checkin_grant_key

logger = get_logger("services.checkin")


@dataclass(frozen=True)
class CheckinResult:
    """Result of a successful check-in."""

    checkin_id: UUID
    checkin_date: date
    added_credits: int
    new_balance: int


class CheckinService(BaseService[DailyCheckin]):
    """Daily check-in with a credit reward."""

    def __init__(
        self,
        session: Session,
        reward_policy: GrantPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._reward_policy = reward_policy
        self._ledger = CreditLedger(session, self.clock)

    def can_check_in_today(self, user_id: str) -> bool:
        return self._find(user_id, self.clock.today()) is None

    def check_in(self, user_id: str) -> CheckinResult:
        """Check the user in for today and award the reward credits.

        Raises:
            AlreadyCheckedInError: If the user already checked in today.
        """
        now = self.clock.now()
        today = self.clock.today()

        if self._find(user_id, today) is not None:
            raise AlreadyCheckedInError(user_id, today.isoformat())

        batch, created = self._ledger.grant_once(
            user_id,
            self._reward_policy.credits,
            GrantScene.AWARD,
            expires_at=calculate_expiration(now, self._reward_policy.valid_days),
            description=f"Daily check-in reward: {today.isoformat()}",
            metadata={"type": "daily-checkin", "checkin_date": today.isoformat()},
            idempotency_key=checkin_grant_key(user_id, today),
        )
        if not created:
            # Another request for the same day won the race
            raise AlreadyCheckedInError(user_id, today.isoformat())

        checkin = DailyCheckin(
            id=uuid4(),
            user_id=user_id,
            checkin_date=today,
            batch_id=batch.id,
            created_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(checkin)
        except IntegrityError as exc:
            raise AlreadyCheckedInError(user_id, today.isoformat()) from exc

        new_balance = self._ledger.balance(user_id)
        logger.info(
            "checkin_recorded",
            extra={
                "user_id": user_id,
                "checkin_date": today.isoformat(),
                "added_credits": batch.credits,
                "new_balance": new_balance,
            },
        )
        return CheckinResult(
            checkin_id=checkin.id,
            checkin_date=today,
            added_credits=batch.credits,
            new_balance=new_balance,
        )

    def _find(self, user_id: str, checkin_date: date) -> DailyCheckin | None:
        return self.session.execute(
            select(DailyCheckin).where(
                DailyCheckin.user_id == user_id,
                DailyCheckin.checkin_date == checkin_date,
            )
        ).scalar_one_or_none()
