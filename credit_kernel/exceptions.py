"""
Typed Exception Hierarchy for the Credit Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (route handlers, workers, operator scripts) must react
to failures precisely: an insufficient balance is shown to the user, an
invalid task transition is a programming error, a duplicate check-in is a
friendly message.  Parsing exception messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        ledger.consume(user_id, 15, reason="media-task")
    except InsufficientBalanceError as e:
        api_response(code=e.code, required=e.required, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CreditKernelError (base)
    |
    +-- LedgerError
    |   +-- InsufficientBalanceError
    |   +-- InvalidAmountError
    |   +-- BatchNotFoundError
    |
    +-- TaskError
    |   +-- TaskNotFoundError
    |   +-- InvalidTaskTransitionError
    |   +-- ActiveTaskLimitError
    |   +-- UnsupportedPlatformError
    |
    +-- CheckinError
    |   +-- AlreadyCheckedInError
    |
    +-- ConfigError
        +-- InvalidConfigError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category  | Code                     | When Raised
----------|--------------------------|------------------------------------------
Ledger    | INSUFFICIENT_BALANCE     | Debit exceeds active, unexpired balance
          | INVALID_AMOUNT           | Non-positive credit amount
          | BATCH_NOT_FOUND          | Credit batch ID doesn't exist
----------|--------------------------|------------------------------------------
Task      | TASK_NOT_FOUND           | Task ID doesn't exist
          | INVALID_TASK_TRANSITION  | Status change not allowed
          | ACTIVE_TASK_LIMIT        | Too many unfinished tasks for the user
          | UNSUPPORTED_PLATFORM     | URL is not a supported media platform
----------|--------------------------|------------------------------------------
Check-in  | ALREADY_CHECKED_IN       | Second check-in on the same UTC day
----------|--------------------------|------------------------------------------
Config    | INVALID_CONFIG           | Configuration value out of range

Refunding an already refunded consumption is NOT an error (idempotent
no-op), and refunding a missing consumption is a logged data-integrity
warning.  Neither raises.
"""


class CreditKernelError(Exception):
    """
    Base exception for all credit kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CREDIT_KERNEL_ERROR"


# Ledger-related exceptions


class LedgerError(CreditKernelError):
    """Base exception for credit ledger errors."""

    code: str = "LEDGER_ERROR"


class InsufficientBalanceError(LedgerError):
    """The user's spendable balance does not cover the requested debit."""

    code: str = "INSUFFICIENT_BALANCE"

    def __init__(self, user_id: str, required: int, available: int):
        self.user_id = user_id
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits for user {user_id}: "
            f"required {required}, available {available}"
        )


class InvalidAmountError(LedgerError):
    """Credit amounts must be positive integers."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: object):
        self.amount = amount
        super().__init__(f"Credit amount must be a positive integer, got {amount!r}")


class BatchNotFoundError(LedgerError):
    """Credit batch with given ID was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Credit batch not found: {batch_id}")


# Task-related exceptions


class TaskError(CreditKernelError):
    """Base exception for media task errors."""

    code: str = "TASK_ERROR"


class TaskNotFoundError(TaskError):
    """Media task with given ID was not found."""

    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Media task not found: {task_id}")


class InvalidTaskTransitionError(TaskError):
    """The requested status change is not allowed from the current status."""

    code: str = "INVALID_TASK_TRANSITION"

    def __init__(self, task_id: str, from_status: str, to_status: str):
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Task {task_id} cannot move from {from_status} to {to_status}"
        )


class ActiveTaskLimitError(TaskError):
    """The user already has the maximum number of unfinished tasks."""

    code: str = "ACTIVE_TASK_LIMIT"

    def __init__(self, user_id: str, limit: int):
        self.user_id = user_id
        self.limit = limit
        super().__init__(
            f"User {user_id} already has {limit} active task(s); "
            "wait for them to complete"
        )


class UnsupportedPlatformError(TaskError):
    """The media URL does not belong to a supported platform."""

    code: str = "UNSUPPORTED_PLATFORM"

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            f"Unsupported media URL: {url}. Only YouTube and TikTok are supported."
        )


# Check-in exceptions


class CheckinError(CreditKernelError):
    """Base exception for daily check-in errors."""

    code: str = "CHECKIN_ERROR"


class AlreadyCheckedInError(CheckinError):
    """The user has already checked in on this UTC day."""

    code: str = "ALREADY_CHECKED_IN"

    def __init__(self, user_id: str, checkin_date: str):
        self.user_id = user_id
        self.checkin_date = checkin_date
        super().__init__(
            f"User {user_id} already checked in on {checkin_date}"
        )


# Configuration exceptions


class ConfigError(CreditKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIG_ERROR"


class InvalidConfigError(ConfigError):
    """A configuration value is missing or out of range."""

    code: str = "INVALID_CONFIG"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid configuration for {field}: {reason}")
