"""
State machine enums and transition tables for debt ledger models.

This module defines the state enums used by the ledger models with
django-fsm, and the tables that decide which transitions are allowed.
"""

from debts.state_machines.states import (
    DebtEvent,
    DebtStatus,
    InstallmentEvent,
    InstallmentStatus,
    InterestCalculationMethod,
    PaymentFrequency,
    PaymentMethod,
    PaymentPlanEvent,
    PaymentPlanStatus,
    PaymentPlanType,
    TransactionDirection,
    TransactionEvent,
    TransactionStatus,
)
from debts.state_machines.transitions import (
    ADMINISTRATIVE_DEBT_EVENTS,
    DEBT_MACHINE,
    INSTALLMENT_MACHINE,
    PAYMENT_PLAN_MACHINE,
    TRANSACTION_MACHINE,
    StateMachine,
)

__all__ = [
    "ADMINISTRATIVE_DEBT_EVENTS",
    "DEBT_MACHINE",
    "INSTALLMENT_MACHINE",
    "PAYMENT_PLAN_MACHINE",
    "TRANSACTION_MACHINE",
    "DebtEvent",
    "DebtStatus",
    "InstallmentEvent",
    "InstallmentStatus",
    "InterestCalculationMethod",
    "PaymentFrequency",
    "PaymentMethod",
    "PaymentPlanEvent",
    "PaymentPlanStatus",
    "PaymentPlanType",
    "StateMachine",
    "TransactionDirection",
    "TransactionEvent",
    "TransactionStatus",
]
