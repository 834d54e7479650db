"""
Ledger exceptions for debt, payment plan and transaction operations.

Every exception here is a precondition or business-rule violation
detected synchronously by the operation that raised it. None of them are
retried by the ledger.

Exception Hierarchy:
    LedgerError (base for the debt ledger)
    ├── LedgerValidationError - Invalid arguments
    │   ├── InvalidAmountError - Amount is <= 0 or exceeds a bound
    │   ├── CurrencyMismatchError - Amount in a different currency than the debt
    │   └── InvalidScheduleError - Installment schedule fails plan rules
    ├── InvalidTransitionError - State change not reachable from current state
    ├── DebtClosedError - Debt is settled or written off
    ├── AlreadyActiveError - Plan (or another plan of the debt) is already active
    ├── AlreadyPaidError - Installment is already paid
    ├── DuplicateSequenceError - Installment sequence already scheduled
    ├── DuplicateProviderRefError - Gateway reference already recorded
    └── NoActiveOfferError - No settlement offer pending
        └── SettlementOfferExpiredError - Offer expired before acceptance

    DebtNotFoundError / PaymentPlanNotFoundError / TransactionNotFoundError
        - Lookup failures (inherit NotFoundError)
    StaleRecordError - Optimistic locking conflict (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)

Usage:
    from debts.exceptions import DebtClosedError, InvalidAmountError

    if amount <= 0:
        raise InvalidAmountError(
            "Payment amount must be positive",
            details={"amount": str(amount)},
        )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError, NotFoundError


# =============================================================================
# Ledger Domain Errors
# =============================================================================


class LedgerError(BaseApplicationError):
    """Base exception for debt ledger operations."""

    default_error_code: str = "LEDGER_ERROR"


class LedgerValidationError(LedgerError):
    """
    Raised when an argument fails ledger validation.

    Use for dates in the past, negative day counts, malformed
    metadata and other non-monetary argument errors.
    """

    default_error_code: str = "LEDGER_VALIDATION_ERROR"


class InvalidAmountError(LedgerValidationError):
    """
    Raised when a monetary argument is <= 0 or exceeds a bound.

    Example:
        raise InvalidAmountError(
            "Discount cannot exceed the plan amount",
            details={"discount": "600.00", "original_amount": "500.00"},
        )
    """

    default_error_code: str = "INVALID_AMOUNT"


class CurrencyMismatchError(LedgerValidationError):
    """Raised when a transaction currency differs from the debt currency."""

    default_error_code: str = "CURRENCY_MISMATCH"


class InvalidScheduleError(LedgerValidationError):
    """
    Raised when an installment schedule breaks plan rules.

    Details carry one list of messages per offending field.
    """

    default_error_code: str = "INVALID_SCHEDULE"


class InvalidTransitionError(LedgerError):
    """
    Raised when a requested state change is not reachable.

    Attributes:
        details: Contains entity, current_state and event (or target_state)
    """

    default_error_code: str = "INVALID_TRANSITION"


class DebtClosedError(LedgerError):
    """Raised when a mutation is attempted on a settled or written-off debt."""

    default_error_code: str = "DEBT_CLOSED"


class AlreadyActiveError(LedgerError):
    """Raised when activating a plan that is active, or whose debt has one."""

    default_error_code: str = "ALREADY_ACTIVE"


class AlreadyPaidError(LedgerError):
    """Raised when registering a payment or failure on a paid installment."""

    default_error_code: str = "ALREADY_PAID"


class DuplicateSequenceError(LedgerError):
    """Raised when an installment sequence is already scheduled on the plan."""

    default_error_code: str = "DUPLICATE_SEQUENCE"


class DuplicateProviderRefError(LedgerError):
    """
    Raised when a (provider, provider_ref) pair is already recorded.

    This is the idempotency guard for at-least-once gateway delivery:
    the same external payment can never be recorded, and so never
    credited, twice.
    """

    default_error_code: str = "DUPLICATE_PROVIDER_REF"


class NoActiveOfferError(LedgerError):
    """Raised when accepting or rejecting a settlement with no offer pending."""

    default_error_code: str = "NO_ACTIVE_OFFER"


class SettlementOfferExpiredError(NoActiveOfferError):
    """Raised when accepting an offer after its expiry."""

    default_error_code: str = "SETTLEMENT_OFFER_EXPIRED"


# =============================================================================
# Lookup Errors
# =============================================================================


class DebtNotFoundError(NotFoundError):
    default_error_code: str = "DEBT_NOT_FOUND"


class PaymentPlanNotFoundError(NotFoundError):
    default_error_code: str = "PAYMENT_PLAN_NOT_FOUND"


class TransactionNotFoundError(NotFoundError):
    default_error_code: str = "TRANSACTION_NOT_FOUND"


# =============================================================================
# Concurrency Control Errors
# =============================================================================


class StaleRecordError(ConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    The record was modified by another process between read and update.
    The caller should retry with fresh data or abort.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """

    default_error_code: str = "STALE_RECORD"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Another process is mutating the same debt. The caller should retry
    later; the ledger itself never retries.

    Attributes:
        details: Contains key and timeout (if applicable)
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


__all__ = [
    # Ledger domain
    "LedgerError",
    "LedgerValidationError",
    "InvalidAmountError",
    "CurrencyMismatchError",
    "InvalidScheduleError",
    "InvalidTransitionError",
    "DebtClosedError",
    "AlreadyActiveError",
    "AlreadyPaidError",
    "DuplicateSequenceError",
    "DuplicateProviderRefError",
    "NoActiveOfferError",
    "SettlementOfferExpiredError",
    # Lookups
    "DebtNotFoundError",
    "PaymentPlanNotFoundError",
    "TransactionNotFoundError",
    # Concurrency
    "StaleRecordError",
    "LockAcquisitionError",
]
