"""
Credit Kernel

A transactional credit ledger for metered media processing:
- Expirable prepaid credit batches
- Atomic consumption alongside the work it pays for
- Idempotent refunds with per-batch restoration
- Reconciliation of failed work against its charges
"""

__version__ = "0.1.0"
