"""
Config -> Kernel Bridges.

Functions that convert a LedgerConfigurationSet into kernel policy objects.
These live in credit_config (the producer) because the kernel must NEVER
import credit_config.

Usage:
    from credit_config import get_active_config
    from credit_config.bridges import build_ledger_policy

    policy = build_ledger_policy(get_active_config())
    TaskService(session, policy).submit_task(...)
"""

from __future__ import annotations

from credit_config.schema import GrantDef, LedgerConfigurationSet
from credit_kernel.domain.policy import GrantPolicy, LedgerPolicy, Pricing


def _grant_policy(grant: GrantDef) -> GrantPolicy:
    return GrantPolicy(credits=grant.credits, valid_days=grant.valid_days)


def build_ledger_policy(config: LedgerConfigurationSet) -> LedgerPolicy:
    """Build the LedgerPolicy consumed by TaskService, GrantService and CheckinService."""
    return LedgerPolicy(
        pricing=Pricing(
            subtitle_extraction=config.pricing.subtitle_extraction,
            video_download=config.pricing.video_download,
            translation=config.pricing.translation,
        ),
        welcome_grant=_grant_policy(config.welcome_grant),
        checkin_reward=_grant_policy(config.checkin_reward),
        concurrent_task_limit=config.tasks.concurrent_limit,
    )
