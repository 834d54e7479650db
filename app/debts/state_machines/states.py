"""
State and choice enums for the debt ledger models.

Usage:
    from debts.state_machines import DebtStatus, PaymentPlanStatus

    debt.status == DebtStatus.ACTIVE
"""

from django.db import models


class DebtStatus(models.TextChoices):
    """
    Lifecycle of a Debt.

    Terminal states: SETTLED, WRITTEN_OFF

    State Flow:
        PENDING_ASSIGNMENT → ACTIVE ⇄ IN_ARREARS
        ACTIVE / IN_ARREARS → DISPUTED → ACTIVE
        ACTIVE / IN_ARREARS → SETTLED
        ACTIVE / IN_ARREARS / DISPUTED → WRITTEN_OFF
    """

    PENDING_ASSIGNMENT = "pending_assignment", "Pending Assignment"
    ACTIVE = "active", "Active"
    IN_ARREARS = "in_arrears", "In Arrears"
    DISPUTED = "disputed", "Disputed"
    SETTLED = "settled", "Settled"
    WRITTEN_OFF = "written_off", "Written Off"


class DebtEvent(models.TextChoices):
    """Events that move a Debt between states."""

    ASSIGN = "assign", "Assign"
    MARK_IN_ARREARS = "mark_in_arrears", "Mark In Arrears"
    CURE_ARREARS = "cure_arrears", "Cure Arrears"
    FLAG_DISPUTE = "flag_dispute", "Flag Dispute"
    RESOLVE_DISPUTE = "resolve_dispute", "Resolve Dispute"
    SETTLE = "settle", "Settle"
    WRITE_OFF = "write_off", "Write Off"
    ACCEPT_SETTLEMENT = "accept_settlement", "Accept Settlement"
    PAY_OFF = "pay_off", "Pay Off"


class InterestCalculationMethod(models.TextChoices):
    NONE = "none", "None"
    SIMPLE = "simple", "Simple"
    COMPOUND = "compound", "Compound"


class PaymentPlanType(models.TextChoices):
    """Kind of repayment arrangement."""

    FULL_SETTLEMENT = "full_settlement", "Full Settlement"
    SYSTEM_GENERATED = "system_generated", "System Generated"
    CUSTOM = "custom", "Custom"


class PaymentFrequency(models.TextChoices):
    ONE_OFF = "one_off", "One Off"
    WEEKLY = "weekly", "Weekly"
    FORTNIGHTLY = "fortnightly", "Fortnightly"
    MONTHLY = "monthly", "Monthly"


class PaymentPlanStatus(models.TextChoices):
    """
    Lifecycle of a PaymentPlan.

    Terminal states: COMPLETED, DEFAULTED, CANCELLED

    State Flow:
        DRAFT → PENDING_APPROVAL → ACTIVE → COMPLETED
        DRAFT → ACTIVE
        ACTIVE → DEFAULTED
        DRAFT / PENDING_APPROVAL / ACTIVE → CANCELLED
    """

    DRAFT = "draft", "Draft"
    PENDING_APPROVAL = "pending_approval", "Pending Approval"
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    DEFAULTED = "defaulted", "Defaulted"
    CANCELLED = "cancelled", "Cancelled"


class PaymentPlanEvent(models.TextChoices):
    SUBMIT_FOR_REVIEW = "submit_for_review", "Submit For Review"
    ACTIVATE = "activate", "Activate"
    COMPLETE = "complete", "Complete"
    DEFAULT = "default", "Default"
    CANCEL = "cancel", "Cancel"


class InstallmentStatus(models.TextChoices):
    """
    Lifecycle of a PaymentInstallment.

    Terminal states: PAID, SKIPPED, WRITTEN_OFF, CANCELLED

    State Flow:
        SCHEDULED → PARTIAL → PAID
        SCHEDULED / PARTIAL → FAILED → PARTIAL / PAID (retry)
    """

    SCHEDULED = "scheduled", "Scheduled"
    PARTIAL = "partial", "Partial"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"
    WRITTEN_OFF = "written_off", "Written Off"
    CANCELLED = "cancelled", "Cancelled"


class InstallmentEvent(models.TextChoices):
    PAY_PARTIALLY = "pay_partially", "Pay Partially"
    PAY_IN_FULL = "pay_in_full", "Pay In Full"
    FAIL = "fail", "Fail"
    SKIP = "skip", "Skip"
    WRITE_OFF = "write_off", "Write Off"
    CANCEL = "cancel", "Cancel"


class TransactionStatus(models.TextChoices):
    """
    Lifecycle of a Transaction.

    State Flow:
        PENDING → SUCCEEDED → REFUNDED
        PENDING → FAILED
        PENDING → CANCELLED
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"


class TransactionEvent(models.TextChoices):
    SETTLE = "settle", "Settle"
    FAIL = "fail", "Fail"
    REFUND = "refund", "Refund"
    CANCEL = "cancel", "Cancel"


class TransactionDirection(models.TextChoices):
    INBOUND = "inbound", "Inbound"
    OUTBOUND = "outbound", "Outbound"


class PaymentMethod(models.TextChoices):
    CARD = "card", "Card"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    DIRECT_DEBIT = "direct_debit", "Direct Debit"
    CASH = "cash", "Cash"
    CHEQUE = "cheque", "Cheque"
    MANUAL_ADJUSTMENT = "manual_adjustment", "Manual Adjustment"
    OTHER = "other", "Other"
