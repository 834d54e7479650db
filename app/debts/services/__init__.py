"""
Ledger services.

Services are the only writers of ledger rows. Each use case serializes on
the debt it touches (see debts.locks) and runs in one database
transaction; domain signals are sent after commit.

Services:
    DebtService: Debt lifecycle, balances and settlement offers
    PaymentPlanService: Plan creation, activation and completion
    PaymentPlanGenerator: Repayment options offered to a debtor
    TransactionService: Recording and settling transactions
    PaymentEventProcessor: Idempotent entry point for gateway events
    CollectionService: Scheduled arrears, interest, offer and retry jobs
"""

from debts.services.collection_service import CollectionService
from debts.services.debt_service import DebtService, locked_debt
from debts.services.plan_generation import PaymentPlanGenerator
from debts.services.plan_service import PaymentPlanService, finish_plan
from debts.services.transaction_service import PaymentEventProcessor, TransactionService

__all__ = [
    "CollectionService",
    "DebtService",
    "PaymentEventProcessor",
    "PaymentPlanGenerator",
    "PaymentPlanService",
    "TransactionService",
    "finish_plan",
    "locked_debt",
]
