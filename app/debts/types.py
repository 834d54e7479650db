"""
Data types for ledger operations.

This module defines dataclasses passed between the ledger models, the
services and the gateway adapter.

Types:
    PaymentApplication: Result of applying a payment to a debt
    InstallmentAllocation: Part of a payment credited to one installment
    SettlementOutcome: Everything a settled transaction changed
    RecordTransactionParams: Parameters for recording a transaction
    PaymentGatewayEvent: Normalized payment outcome from a gateway adapter
    InstallmentPreview / PaymentPlanOption: Plan options offered to a debtor
    CustomInstallment: One row of a debtor-proposed schedule
    ArrearsOutcome: What one arrears pass changed on a debt

Usage:
    from debts.types import RecordTransactionParams

    params = RecordTransactionParams(
        debt_id=debt.id,
        amount=Decimal("500.00"),
        currency="AUD",
        provider="stripe",
        provider_ref="pi_3Nx...",
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from core.money import ZERO, round_money
from debts.exceptions import InvalidAmountError, LedgerValidationError
from debts.state_machines import PaymentMethod, TransactionDirection

if TYPE_CHECKING:
    from debts.models import Transaction


@dataclass(frozen=True)
class PaymentApplication:
    """
    Result of Debt.apply_payment().

    Attributes:
        applied: Amount that reduced the outstanding principal
        unapplied: Excess beyond the outstanding principal
        settled: True when the payment cleared the debt and settled it
    """

    applied: Decimal
    unapplied: Decimal
    settled: bool


@dataclass(frozen=True)
class InstallmentAllocation:
    installment_id: uuid.UUID
    sequence: int
    amount: Decimal
    status: str


@dataclass
class SettlementOutcome:
    """
    Everything a settled transaction changed.

    Attributes:
        transaction: The settled transaction
        payment: Debt application result (None for outbound transactions)
        allocations: Installments credited, in sequence order
        plan_completed: Whether the linked plan was completed
        debt_settled: Whether the debt reached zero and settled
        arrears_cured: Whether the debt moved from in arrears back to active
        duplicate: True when the event had already been processed
    """

    transaction: Transaction
    payment: PaymentApplication | None = None
    allocations: list[InstallmentAllocation] = field(default_factory=list)
    plan_completed: bool = False
    debt_settled: bool = False
    arrears_cured: bool = False
    duplicate: bool = False


@dataclass
class RecordTransactionParams:
    """
    Parameters for recording a transaction.

    Attributes:
        debt_id: Debt the money movement belongs to
        amount: Positive amount in ``currency``
        currency: ISO 4217 code, must match the debt
        provider: Gateway or channel name ("stripe", "bank", "manual")
        provider_ref: Gateway reference, unique per provider
        direction: Inbound from debtor or outbound to organization
        method: Payment method
        payment_plan_id / installment_id: Optional plan links
        processed_at: When the gateway processed the movement
        fee_amount: Processing fee charged by the provider, if known
        metadata: Opaque annotations
    """

    debt_id: uuid.UUID
    amount: Decimal
    currency: str
    provider: str
    provider_ref: str
    direction: str = TransactionDirection.INBOUND
    method: str = PaymentMethod.CARD
    payment_plan_id: uuid.UUID | None = None
    installment_id: uuid.UUID | None = None
    processed_at: datetime | None = None
    fee_amount: Decimal | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.amount = round_money(self.amount)
        if self.amount <= ZERO:
            raise InvalidAmountError(
                "Transaction amount must be positive",
                details={"amount": str(self.amount)},
            )
        if not self.provider or not self.provider_ref:
            raise LedgerValidationError(
                "Transactions require a provider and provider reference",
                details={"provider": self.provider, "provider_ref": self.provider_ref},
            )
        if self.direction not in TransactionDirection.values:
            raise LedgerValidationError(
                f"Unknown direction '{self.direction}'",
                details={"direction": self.direction},
            )
        if self.method not in PaymentMethod.values:
            raise LedgerValidationError(
                f"Unknown payment method '{self.method}'",
                details={"method": self.method},
            )
        self.currency = self.currency.upper()


@dataclass
class PaymentGatewayEvent:
    """
    A payment outcome delivered by a gateway adapter.

    Adapters translate their wire payloads into this shape; the ledger
    never sees provider-specific fields. Delivery is at-least-once, so the
    same (provider, provider_ref) may arrive more than once.
    """

    provider: str
    provider_ref: str
    debt_id: uuid.UUID
    amount: Decimal
    currency: str
    succeeded: bool
    occurred_at: datetime | None = None
    failure_reason: str = ""
    settlement_ref: str = ""
    fee_amount: Decimal | None = None
    payment_plan_id: uuid.UUID | None = None
    installment_id: uuid.UUID | None = None
    method: str = PaymentMethod.CARD
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_record_params(self) -> RecordTransactionParams:
        return RecordTransactionParams(
            debt_id=self.debt_id,
            amount=self.amount,
            currency=self.currency,
            provider=self.provider,
            provider_ref=self.provider_ref,
            method=self.method,
            payment_plan_id=self.payment_plan_id,
            installment_id=self.installment_id,
            processed_at=self.occurred_at,
            fee_amount=self.fee_amount,
            metadata=dict(self.metadata),
        )


@dataclass(frozen=True)
class InstallmentPreview:
    sequence: int
    due_at: datetime
    amount: Decimal


@dataclass
class PaymentPlanOption:
    """
    One repayment option offered to a debtor before a plan exists.

    ``total_payable`` is what the debtor pays: original amount minus the
    discount plus any admin fee.
    """

    plan_type: str
    frequency: str
    title: str
    description: str
    original_amount: Decimal
    discount_amount: Decimal
    total_payable: Decimal
    installment_amount: Decimal
    installment_count: int
    first_payment_at: datetime
    installments: list[InstallmentPreview] = field(default_factory=list)
    admin_fee_amount: Decimal = ZERO
    requires_approval: bool = False
    is_recommended: bool = False

    @property
    def savings(self) -> Decimal:
        return self.discount_amount - self.admin_fee_amount


@dataclass
class ArrearsOutcome:
    """
    What one arrears pass changed on a debt.

    Attributes:
        overdue_count: Open installments past due (after grace)
        late_fees_applied: Installments charged a late fee in this pass
        late_fee_total: Sum of the late fees charged
        marked_in_arrears: Whether the debt moved from active to in arrears
        plan_defaulted: Whether the plan was defaulted
    """

    debt_id: uuid.UUID
    overdue_count: int = 0
    late_fees_applied: int = 0
    late_fee_total: Decimal = ZERO
    marked_in_arrears: bool = False
    plan_defaulted: bool = False


@dataclass(frozen=True)
class CustomInstallment:
    due_at: datetime
    amount: Decimal


__all__ = [
    "ArrearsOutcome",
    "CustomInstallment",
    "InstallmentAllocation",
    "InstallmentPreview",
    "PaymentApplication",
    "PaymentGatewayEvent",
    "PaymentPlanOption",
    "RecordTransactionParams",
    "SettlementOutcome",
]
