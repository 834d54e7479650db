"""
Debts app: the debt-collection ledger.

This app handles:
- Debt accounts with principal, interest and fee balances
- Debt lifecycle (assignment, arrears, disputes, settlement, write-off)
- Payment plans and their installment schedules
- Transactions reported by payment gateways
- Periodic arrears, interest and settlement-offer jobs

Related apps:
    - organizations: Creditors and their fee configuration

Usage:
    from debts.services import DebtService, TransactionService

    debt = DebtService.open_debt(organization, debtor, Decimal("1500.00"))
    DebtService.assign(debt.id, collector_id="agent-7")
"""
