"""
Debt ledger models.

Models:
    Debtor: Party a debt is collected from
    Debt: Ledger account with principal, interest and fees
    PaymentPlan: Repayment agreement for a debt
    PaymentInstallment: One scheduled payment within a plan
    Transaction: Money movement reported by a payment provider
"""

from debts.models.debt import Debt
from debts.models.debtor import Debtor
from debts.models.payment_plan import PaymentInstallment, PaymentPlan
from debts.models.transaction import Transaction

__all__ = [
    "Debt",
    "Debtor",
    "PaymentInstallment",
    "PaymentPlan",
    "Transaction",
]
