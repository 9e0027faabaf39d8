"""
Hypothesis-based property tests for the credit ledger.

Properties:
- consume followed by refund restores the balance exactly
- refunding twice changes the balance once
- a consume larger than the balance fails and changes nothing
- line items always sum to the consumed amount and never overdraw a batch
"""

from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from credit_kernel.exceptions import InsufficientBalanceError
from credit_kernel.models.credit_batch import CreditBatch, GrantScene
from credit_kernel.services.grant_service import calculate_expiration
from credit_kernel.services.ledger_service import CreditLedger, RefundStatus

# (credits, valid_days or None)
grant_strategy = st.tuples(
    st.integers(min_value=1, max_value=500),
    st.one_of(st.none(), st.integers(min_value=1, max_value=60)),
)

FUZZ_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


def _funded_user(ledger: CreditLedger, clock, grants) -> str:
    user = f"fuzz-{uuid4().hex}"
    for credits, valid_days in grants:
        ledger.grant(
            user,
            credits,
            GrantScene.PAYMENT,
            expires_at=calculate_expiration(clock.now(), valid_days),
        )
    return user


@FUZZ_SETTINGS
@given(
    grants=st.lists(grant_strategy, min_size=1, max_size=6),
    amount=st.integers(min_value=1, max_value=3000),
)
def test_consume_refund_round_trip(session, deterministic_clock, grants, amount):
    ledger = CreditLedger(session, deterministic_clock)
    user = _funded_user(ledger, deterministic_clock, grants)
    before = ledger.balance(user)

    if amount > before:
        with pytest.raises(InsufficientBalanceError):
            ledger.consume(user, amount, "fuzz")
        assert ledger.balance(user) == before
        return

    record = ledger.consume(user, amount, "fuzz")
    assert record.line_total == amount
    assert ledger.balance(user) == before - amount

    assert ledger.refund(record.id).status == RefundStatus.REFUNDED
    assert ledger.refund(record.id).status == RefundStatus.ALREADY_REFUNDED
    assert ledger.balance(user) == before


@FUZZ_SETTINGS
@given(
    grants=st.lists(grant_strategy, min_size=1, max_size=5),
    amounts=st.lists(st.integers(min_value=1, max_value=200), min_size=1, max_size=8),
)
def test_batches_stay_within_bounds(session, deterministic_clock, grants, amounts):
    ledger = CreditLedger(session, deterministic_clock)
    user = _funded_user(ledger, deterministic_clock, grants)
    start = ledger.balance(user)

    spent = 0
    for amount in amounts:
        try:
            record = ledger.consume(user, amount, "fuzz")
        except InsufficientBalanceError:
            continue
        spent += amount
        assert sum(item.amount for item in record.line_items) == amount

    assert ledger.balance(user) == start - spent
    for batch in session.query(CreditBatch).filter_by(user_id=user):
        assert 0 <= batch.remaining_credits <= batch.credits
