"""Ledger policy values, task transitions and the deterministic clock."""

from datetime import date, datetime, timedelta, timezone

import pytest

from credit_kernel.domain.clock import DeterministicClock
from credit_kernel.domain.policy import GrantPolicy, LedgerPolicy, Pricing
from credit_kernel.exceptions import InvalidConfigError
from credit_kernel.models.media_task import TaskStatus, can_transition


class TestPolicy:
    def test_valid_policy(self):
        policy = LedgerPolicy(
            pricing=Pricing(10, 15, 5),
            welcome_grant=GrantPolicy(50, 7),
            checkin_reward=GrantPolicy(2),
        )
        assert policy.concurrent_task_limit == 1
        assert policy.checkin_reward.valid_days is None

    @pytest.mark.parametrize("price", [0, -1, 2.5, True])
    def test_prices_must_be_positive_integers(self, price):
        with pytest.raises(InvalidConfigError) as exc_info:
            Pricing(subtitle_extraction=price, video_download=15, translation=5)
        assert exc_info.value.field == "pricing.subtitle_extraction"

    def test_grant_lifetime_must_be_positive(self):
        with pytest.raises(InvalidConfigError):
            GrantPolicy(credits=10, valid_days=0)

    def test_task_limit_must_be_positive(self):
        with pytest.raises(InvalidConfigError):
            LedgerPolicy(
                pricing=Pricing(10, 15, 5),
                welcome_grant=GrantPolicy(50, 7),
                checkin_reward=GrantPolicy(2),
                concurrent_task_limit=0,
            )


class TestTaskTransitions:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (TaskStatus.PENDING, TaskStatus.PROCESSING),
            (TaskStatus.PENDING, TaskStatus.FAILED),
            (TaskStatus.PROCESSING, TaskStatus.EXTRACTED),
            (TaskStatus.PROCESSING, TaskStatus.COMPLETED),
            (TaskStatus.PROCESSING, TaskStatus.FAILED),
            (TaskStatus.EXTRACTED, TaskStatus.TRANSLATING),
            (TaskStatus.EXTRACTED, TaskStatus.COMPLETED),
            (TaskStatus.TRANSLATING, TaskStatus.COMPLETED),
            (TaskStatus.TRANSLATING, TaskStatus.FAILED),
        ],
    )
    def test_allowed(self, from_status, to_status):
        assert can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (TaskStatus.PENDING, TaskStatus.COMPLETED),
            (TaskStatus.EXTRACTED, TaskStatus.FAILED),
            (TaskStatus.COMPLETED, TaskStatus.FAILED),
            (TaskStatus.FAILED, TaskStatus.PROCESSING),
            (TaskStatus.FAILED, TaskStatus.FAILED),
        ],
    )
    def test_rejected(self, from_status, to_status):
        assert not can_transition(from_status, to_status)

    def test_accepts_stored_strings(self):
        assert can_transition("extracted", "translating")


class TestDeterministicClock:
    def test_fixed_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def test_advance_and_today(self):
        clock = DeterministicClock()
        clock.advance_days(1)
        clock.advance(3600)

        assert clock.now() == datetime(2024, 1, 2, 13, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 1, 2)

    def test_tick(self):
        clock = DeterministicClock()
        start = clock.now()
        assert clock.tick() == start + timedelta(seconds=1)
