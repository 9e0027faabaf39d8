"""
GrantService -- welcome credits and purchased credits.

Responsibility:
    Turns grant policies into credit batches: the one-time welcome gift for
    new users and credits bought through orders or subscriptions.

Architecture position:
    Kernel > Services.  Delegates batch creation to CreditLedger.

Invariants enforced:
    G1 -- One welcome gift per user, ever.  The grant carries the key
          ``welcome:<user_id>``; replays return the original batch.  Spending
          down to zero does not make a user eligible again.
    G2 -- One grant per order.  Purchases carry ``order:<order_no>``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.orm import Session

from credit_kernel.domain.clock import Clock
from credit_kernel.domain.policy import GrantPolicy
from credit_kernel.logging_config import get_logger
from credit_kernel.models.credit_batch import GrantScene
from credit_kernel.services.base import BaseService
from credit_kernel.services.ledger_service import CreditLedger
from credit_kernel.utils.idempotency import generate_grant_key, order_grant_key

logger = get_logger("services.grant")


def calculate_expiration(now: datetime, valid_days: int | None) -> datetime | None:
    """Expiry of credits granted at ``now``; None means they never expire."""
    if valid_days is None:
        return None
    return now + timedelta(days=valid_days)


@dataclass(frozen=True)
class GrantResult:
    """Result of a policy-driven grant."""

    batch_id: UUID
    credits: int
    expires_at: datetime | None
    newly_granted: bool


class GrantService(BaseService):
    """Applies grant policies through the ledger."""

    def __init__(
        self,
        session: Session,
        welcome_policy: GrantPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self._welcome_policy = welcome_policy
        self._ledger = CreditLedger(session, self.clock)

    def grant_welcome_credits(self, user_id: str) -> GrantResult:
        """Grant the new-user gift once (G1)."""
        now = self.clock.now()
        expires_at = calculate_expiration(now, self._welcome_policy.valid_days)
        key = generate_grant_key("welcome", user_id)

        batch, newly_granted = self._ledger.grant_once(
            user_id,
            self._welcome_policy.credits,
            GrantScene.GIFT,
            expires_at=expires_at,
            description="Welcome bonus: free plan credits",
            metadata={"type": "welcome-grant"},
            idempotency_key=key,
        )
        if not newly_granted:
            logger.info(
                "welcome_grant_skipped",
                extra={"user_id": user_id, "batch_id": str(batch.id)},
            )
        return GrantResult(
            batch_id=batch.id,
            credits=batch.credits,
            expires_at=batch.expires_at,
            newly_granted=newly_granted,
        )

    def grant_purchase(
        self,
        user_id: str,
        credits: int,
        order_no: str,
        *,
        scene: GrantScene = GrantScene.PAYMENT,
        valid_days: int | None = None,
        description: str | None = None,
    ) -> GrantResult:
        """Grant credits paid for by an order or subscription period (G2)."""
        now = self.clock.now()
        expires_at = calculate_expiration(now, valid_days)
        key = order_grant_key(order_no)

        batch, newly_granted = self._ledger.grant_once(
            user_id,
            credits,
            scene,
            expires_at=expires_at,
            description=description or f"Credits for order {order_no}",
            metadata={"type": "purchase", "order_no": order_no},
            order_no=order_no,
            idempotency_key=key,
        )
        return GrantResult(
            batch_id=batch.id,
            credits=batch.credits,
            expires_at=batch.expires_at,
            newly_granted=newly_granted,
        )
