"""
Debt use cases.

DebtService is the only writer of Debt rows. Every use case runs under the
per-debt Redis lock and inside one database transaction with the row
locked, so concurrent payments, fees and status changes on the same debt
are applied one after another.

Flow for every mutation:
    1. Acquire debt_lock(debt_id)
    2. BEGIN; SELECT ... FOR UPDATE
    3. Call the Debt method (validates and mutates in memory)
    4. save() (version + 1)
    5. COMMIT, then domain signals fire

Usage:
    from debts.services import DebtService

    debt = DebtService.open_debt(organization, debtor, Decimal("5000.00"))
    DebtService.assign(debt.id, collector_id="agent-7")
    application = DebtService.apply_payment(debt.id, Decimal("500.00"))
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import NotFoundError
from core.services import BaseService
from debts.exceptions import DebtNotFoundError
from debts.locks import check_version, debt_lock
from debts.models import Debt
from debts.signals import (
    debt_status_changed,
    payment_applied,
    send_on_commit,
    settlement_accepted,
    settlement_proposed,
)
from organizations.services import FeeConfigurationService

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from datetime import datetime
    from typing import Any

    from debts.models import Debtor
    from debts.types import PaymentApplication
    from organizations.models import Organization

logger = logging.getLogger(__name__)


@contextmanager
def locked_debt(debt_id, expected_version: int | None = None) -> Generator[Debt, None, None]:
    """
    Yield the debt locked for update.

    Holds the per-debt distributed lock and a row lock inside an atomic
    block for the duration of the ``with`` body.

    Args:
        debt_id: Debt UUID
        expected_version: When given, fail unless the stored version matches

    Raises:
        DebtNotFoundError: If the debt does not exist
        StaleRecordError: If expected_version no longer matches
        LockAcquisitionError: If the lock could not be acquired in time
    """
    with debt_lock(debt_id):
        with transaction.atomic():
            if expected_version is not None:
                try:
                    debt = check_version(Debt, debt_id, expected_version)
                except NotFoundError:
                    raise DebtNotFoundError(
                        f"Debt {debt_id} not found",
                        details={"debt_id": str(debt_id)},
                    ) from None
            else:
                debt = Debt.objects.select_for_update().filter(pk=debt_id).first()
                if debt is None:
                    raise DebtNotFoundError(
                        f"Debt {debt_id} not found",
                        details={"debt_id": str(debt_id)},
                    )
            yield debt


def notify_status_change(debt: Debt, previous_status: str) -> None:
    """Send debt_status_changed on commit if the status moved."""
    if debt.status == previous_status:
        return
    send_on_commit(
        debt_status_changed,
        sender=Debt,
        debt=debt,
        previous_status=str(previous_status),
        new_status=str(debt.status),
    )


def cancel_active_plan(debt: Debt, reason: str) -> None:
    """Cancel the debt's active plan, if any, when the debt closes."""
    plan = debt.active_plan
    if plan is None:
        return
    plan.cancel(reason)
    plan.save()
    logger.info(
        "Active payment plan cancelled with its debt",
        extra={"debt_id": str(debt.id), "plan_id": str(plan.id)},
    )


class DebtService(BaseService):
    """
    Serialized use cases for a single debt.

    Methods raise LedgerError subclasses for rejected operations; nothing
    is saved when an operation is rejected.
    """

    @classmethod
    def get_debt(cls, debt_id) -> Debt:
        debt = Debt.objects.select_related("organization", "debtor").filter(pk=debt_id).first()
        if debt is None:
            raise DebtNotFoundError(
                f"Debt {debt_id} not found",
                details={"debt_id": str(debt_id)},
            )
        return debt

    @classmethod
    def open_debt(
        cls,
        organization: Organization,
        debtor: Debtor,
        principal,
        currency: str | None = None,
        **fields: Any,
    ) -> Debt:
        """
        Place a new debt in pending_assignment.

        Raises:
            InvalidAmountError: If principal is not positive
        """
        debt = Debt.open(
            organization=organization,
            debtor=debtor,
            principal=principal,
            currency=currency,
            **fields,
        )
        debt.save()

        cls.get_logger().info(
            "Debt opened",
            extra={
                "debt_id": str(debt.id),
                "organization_id": str(organization.id),
                "principal": str(debt.original_principal),
                "currency": debt.currency,
            },
        )
        return debt

    @classmethod
    def _run(
        cls,
        debt_id,
        action: str,
        mutate: Callable[[Debt], Any],
        expected_version: int | None = None,
    ) -> tuple[Debt, Any]:
        with locked_debt(debt_id, expected_version) as debt:
            previous_status = debt.status
            result = mutate(debt)
            debt.save()
            notify_status_change(debt, previous_status)

        cls.get_logger().info(
            f"Debt {action}",
            extra={
                "debt_id": str(debt.id),
                "status": str(debt.status),
                "version": debt.version,
            },
        )
        return debt, result

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    @classmethod
    def assign(cls, debt_id, collector_id: str = "", at: datetime | None = None) -> Debt:
        debt, _ = cls._run(debt_id, "assigned", lambda debt: debt.assign(collector_id, at))
        return debt

    @classmethod
    def set_status(
        cls,
        debt_id,
        new_status: str,
        reason: str = "",
        expected_version: int | None = None,
    ) -> Debt:
        """
        Administrative status change.

        Raises:
            InvalidTransitionError: If the table has no administrative path
            StaleRecordError: If expected_version is stale
        """

        def change(debt: Debt) -> None:
            debt.set_status(new_status, reason)
            if debt.is_terminal:
                cancel_active_plan(debt, reason or f"Debt {debt.status}")

        debt, _ = cls._run(
            debt_id,
            f"status set to {new_status}",
            change,
            expected_version=expected_version,
        )
        return debt

    @classmethod
    def flag_dispute(cls, debt_id, reason: str) -> Debt:
        debt, _ = cls._run(debt_id, "disputed", lambda debt: debt.flag_dispute(reason))
        return debt

    @classmethod
    def resolve_dispute(cls, debt_id, note: str = "") -> Debt:
        debt, _ = cls._run(debt_id, "dispute resolved", lambda debt: debt.resolve_dispute(note))
        return debt

    @classmethod
    def write_off(cls, debt_id, reason: str, at: datetime | None = None) -> Debt:
        def write_off(debt: Debt) -> None:
            debt.write_off(reason, at)
            cancel_active_plan(debt, f"Debt written off: {reason}")

        debt, _ = cls._run(debt_id, "written off", write_off)
        return debt

    # ==========================================================================
    # Balances
    # ==========================================================================

    @classmethod
    def accrue_interest(cls, debt_id, amount, as_of: datetime | None = None) -> Debt:
        debt, _ = cls._run(debt_id, "interest accrued", lambda debt: debt.accrue_interest(amount, as_of))
        return debt

    @classmethod
    def add_fee(cls, debt_id, amount, reason: str, at: datetime | None = None) -> Debt:
        debt, _ = cls._run(debt_id, "fee added", lambda debt: debt.add_fee(amount, reason, at))
        return debt

    @classmethod
    def apply_payment(cls, debt_id, amount, at: datetime | None = None) -> PaymentApplication:
        """
        Apply a payment received outside a gateway (cash, cheque, adjustment).

        Gateway payments go through TransactionService.settle(), which also
        records the Transaction and credits installments.
        """

        def apply(debt: Debt) -> PaymentApplication:
            application = debt.apply_payment(amount, at)
            if application.settled:
                cancel_active_plan(debt, "Debt paid off")
            return application

        debt, application = cls._run(debt_id, "payment applied", apply)
        send_on_commit(
            payment_applied,
            sender=Debt,
            debt=debt,
            transaction=None,
            application=application,
        )
        return application

    @classmethod
    def waive(cls, debt_id, amount, reason: str, at: datetime | None = None) -> Debt:
        def waive(debt: Debt) -> None:
            if debt.waive(amount, reason, at):
                cancel_active_plan(debt, "Debt cleared by waiver")

        debt, _ = cls._run(debt_id, "charges waived", waive)
        return debt

    # ==========================================================================
    # Settlement Offers
    # ==========================================================================

    @classmethod
    def propose_settlement(
        cls,
        debt_id,
        amount=None,
        expires_at: datetime | None = None,
        now: datetime | None = None,
    ) -> Debt:
        """
        Offer to close the debt for less than the total owed.

        Args:
            amount: Offer amount; defaults to the total owed minus the
                organization's full payment discount
            expires_at: Offer expiry; defaults to SETTLEMENT_OFFER_DEFAULT_DAYS from now
        """
        now = now or timezone.now()
        expires_at = expires_at or now + timedelta(days=settings.SETTLEMENT_OFFER_DEFAULT_DAYS)

        def propose(debt: Debt) -> None:
            offer = amount
            if offer is None:
                config = FeeConfigurationService.get_for_organization(debt.organization_id)
                offer = debt.total_outstanding - config.full_payment_discount(debt.total_outstanding)
            debt.propose_settlement(offer, expires_at, now)

        debt, _ = cls._run(debt_id, "settlement proposed", propose)
        send_on_commit(
            settlement_proposed,
            sender=Debt,
            debt=debt,
            amount=debt.settlement_offer_amount,
            expires_at=debt.settlement_offer_expires_at,
        )
        return debt

    @classmethod
    def accept_settlement(cls, debt_id, at: datetime | None = None) -> Debt:
        def accept(debt: Debt):
            amount = debt.accept_settlement(at)
            cancel_active_plan(debt, "Debt settled by accepted offer")
            return amount

        debt, amount = cls._run(debt_id, "settlement accepted", accept)
        send_on_commit(settlement_accepted, sender=Debt, debt=debt, amount=amount)
        return debt

    @classmethod
    def reject_settlement(cls, debt_id, reason: str = "") -> Debt:
        debt, _ = cls._run(debt_id, "settlement rejected", lambda debt: debt.reject_settlement(reason))
        return debt

    # ==========================================================================
    # Administration
    # ==========================================================================

    @classmethod
    def schedule_next_action(cls, debt_id, at: datetime | None) -> Debt:
        debt, _ = cls._run(debt_id, "next action scheduled", lambda debt: debt.schedule_next_action(at))
        return debt

    @classmethod
    def append_note(cls, debt_id, text: str, expected_version: int | None = None) -> Debt:
        debt, _ = cls._run(
            debt_id,
            "note added",
            lambda debt: debt.append_note(text),
            expected_version=expected_version,
        )
        return debt

