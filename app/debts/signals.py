"""
Domain signals for the debt ledger.

Services send these after the database transaction commits, so receivers
(notifications, reporting, CRM sync) never see rolled-back changes.

Usage:
    from django.dispatch import receiver

    from debts.signals import payment_applied

    @receiver(payment_applied)
    def on_payment_applied(sender, debt, transaction, application, **kwargs):
        ...

Signals:
    debt_status_changed: debt, previous_status, new_status
    settlement_proposed: debt, amount, expires_at
    settlement_accepted: debt, amount
    payment_plan_activated: plan
    payment_plan_completed: plan
    payment_plan_defaulted: plan, reason
    payment_applied: debt, transaction, application
    payment_failed: transaction, reason
"""

from __future__ import annotations

from django.db import transaction
from django.dispatch import Signal

debt_status_changed = Signal()
settlement_proposed = Signal()
settlement_accepted = Signal()
payment_plan_activated = Signal()
payment_plan_completed = Signal()
payment_plan_defaulted = Signal()
payment_applied = Signal()
payment_failed = Signal()


def send_on_commit(signal: Signal, sender, **kwargs) -> None:
    """Send ``signal`` once the surrounding database transaction commits."""
    transaction.on_commit(lambda: signal.send(sender=sender, **kwargs))
