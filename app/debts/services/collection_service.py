"""
Collection jobs run on a schedule.

These are the ledger side of the periodic Celery tasks in debts.tasks:
each function either finds candidate debts (cheap, unlocked queries) or
processes one debt under its lock, so tasks can fan out one message per
debt and a failure on one debt never blocks the others.

Jobs:
    - Arrears: late fees on overdue installments, Active -> InArrears,
      plan defaulted after too many missed installments
    - Settlement offers: offers past expiry are rejected
    - Interest: accrued up to the run time for interest-bearing debts
    - Failed payments: recent inbound failures tagged for a retry
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from core.money import ZERO, round_money
from core.services import BaseService
from debts.models import Debt, PaymentInstallment, PaymentPlan, Transaction
from debts.models.payment_plan import OPEN_INSTALLMENT_STATUSES
from debts.services.debt_service import locked_debt, notify_status_change
from debts.signals import payment_plan_defaulted, send_on_commit
from debts.state_machines import (
    DebtStatus,
    InterestCalculationMethod,
    PaymentPlanStatus,
    TransactionDirection,
    TransactionStatus,
)
from debts.types import ArrearsOutcome
from organizations.services import FeeConfigurationService

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

OPEN_DEBT_STATUSES = (DebtStatus.ACTIVE, DebtStatus.IN_ARREARS, DebtStatus.DISPUTED)


class CollectionService(BaseService):
    """Scheduled collection work over many debts, one debt at a time."""

    # ==========================================================================
    # Arrears
    # ==========================================================================

    @classmethod
    def debts_with_overdue_installments(cls, as_of: datetime | None = None) -> list:
        """
        Ids of open debts whose active plan has an installment past due.

        Grace periods are applied per debt by process_arrears().
        """
        as_of = as_of or timezone.now()
        return list(
            PaymentInstallment.objects.filter(
                plan__status=PaymentPlanStatus.ACTIVE,
                plan__debt__status__in=OPEN_DEBT_STATUSES,
                status__in=OPEN_INSTALLMENT_STATUSES,
                due_at__lt=as_of,
            )
            .order_by()
            .values_list("plan__debt_id", flat=True)
            .distinct()
        )

    @classmethod
    def process_arrears(cls, debt_id, as_of: datetime | None = None) -> ArrearsOutcome:
        """
        Apply the arrears rules to one debt.

        An installment is overdue once its due date plus the larger of the
        debt's and the plan's grace days has passed. Each overdue
        installment is charged one late fee (on its remaining amount), added
        to both the installment and the debt's fees. An active debt moves to
        in_arrears, and the plan defaults once PLAN_DEFAULT_MISSED_INSTALLMENTS
        installments are overdue.
        """
        as_of = as_of or timezone.now()
        outcome = ArrearsOutcome(debt_id=debt_id)

        with locked_debt(debt_id) as debt:
            plan = (
                PaymentPlan.objects.select_for_update()
                .filter(debt=debt, status=PaymentPlanStatus.ACTIVE)
                .first()
            )
            if debt.is_terminal or plan is None:
                return outcome

            grace_days = max(debt.grace_days, plan.grace_period_in_days)
            cutoff = as_of - timedelta(days=grace_days)
            overdue = list(
                plan.open_installments().filter(due_at__lt=cutoff).select_for_update()
            )
            outcome.overdue_count = len(overdue)
            if not overdue:
                return outcome

            previous_status = debt.status
            config = FeeConfigurationService.get_for_organization(debt.organization_id)
            for installment in overdue:
                if installment.late_fee_applied_at is not None:
                    continue
                fee = debt.late_fee_for(installment.remaining, config)
                if fee <= ZERO:
                    continue
                installment.apply_late_fee(fee, as_of)
                installment.save()
                debt.add_fee(fee, f"Late fee for installment {installment.sequence}", as_of)
                outcome.late_fees_applied += 1
                outcome.late_fee_total = round_money(outcome.late_fee_total + fee)

            if debt.status == DebtStatus.ACTIVE:
                debt.mark_in_arrears(f"{len(overdue)} installment(s) overdue")
                outcome.marked_in_arrears = True

            if len(overdue) >= settings.PLAN_DEFAULT_MISSED_INSTALLMENTS:
                reason = f"{len(overdue)} installments missed"
                plan.mark_defaulted(as_of, reason)
                plan.save()
                send_on_commit(payment_plan_defaulted, sender=PaymentPlan, plan=plan, reason=reason)
                outcome.plan_defaulted = True

            debt.save()
            notify_status_change(debt, previous_status)

        cls.get_logger().info(
            "Arrears processed",
            extra={
                "debt_id": str(debt_id),
                "overdue_count": outcome.overdue_count,
                "late_fees_applied": outcome.late_fees_applied,
                "late_fee_total": str(outcome.late_fee_total),
                "marked_in_arrears": outcome.marked_in_arrears,
                "plan_defaulted": outcome.plan_defaulted,
            },
        )
        return outcome

    # ==========================================================================
    # Settlement Offers
    # ==========================================================================

    @classmethod
    def expire_settlement_offers(cls, now: datetime | None = None) -> int:
        """
        Reject every open settlement offer past its expiry.

        Returns:
            Number of offers expired
        """
        now = now or timezone.now()
        debt_ids = list(
            Debt.objects.filter(
                settlement_offer_amount__isnull=False,
                settlement_offer_expires_at__lte=now,
            ).values_list("id", flat=True)
        )

        expired = 0
        for debt_id in debt_ids:
            with locked_debt(debt_id) as debt:
                # Accepted or replaced since the query ran
                if not debt.has_active_settlement_offer or not debt.settlement_offer_is_expired(now):
                    continue
                debt.reject_settlement("Offer expired")
                debt.save()
            expired += 1

        if expired:
            cls.get_logger().info("Settlement offers expired", extra={"count": expired})
        return expired

    # ==========================================================================
    # Interest
    # ==========================================================================

    @classmethod
    def debts_accruing_interest(cls) -> list:
        return list(
            Debt.objects.filter(
                status__in=OPEN_DEBT_STATUSES,
                interest_rate_annual_percentage__gt=0,
            )
            .exclude(interest_calculation_method=InterestCalculationMethod.NONE)
            .values_list("id", flat=True)
        )

    @classmethod
    def accrue_interest(cls, debt_id, as_of: datetime | None = None) -> Decimal:
        """
        Accrue interest on one debt up to ``as_of``.

        Returns:
            The interest added (zero when nothing was due)
        """
        as_of = as_of or timezone.now()
        with locked_debt(debt_id) as debt:
            if debt.is_terminal:
                return ZERO
            interest = debt.calculate_interest(as_of)
            if interest <= ZERO:
                return ZERO
            debt.accrue_interest(interest, as_of)
            debt.save()

        cls.get_logger().info(
            "Interest accrued",
            extra={"debt_id": str(debt_id), "amount": str(interest), "as_of": as_of.isoformat()},
        )
        return interest

    # ==========================================================================
    # Failed Payments
    # ==========================================================================

    @classmethod
    def flag_failed_payments_for_retry(cls, now: datetime | None = None) -> int:
        """
        Tag recent failed inbound payments for a follow-up attempt.

        Only transactions that failed within FAILED_PAYMENT_RETRY_WINDOW_DAYS
        and are not already tagged are considered.

        Returns:
            Number of transactions flagged
        """
        now = now or timezone.now()
        window_start = now - timedelta(days=settings.FAILED_PAYMENT_RETRY_WINDOW_DAYS)
        candidates = Transaction.objects.filter(
            status=TransactionStatus.FAILED,
            direction=TransactionDirection.INBOUND,
            updated_at__gte=window_start,
        ).exclude(metadata__has_key="retry_flagged_at")

        flagged = 0
        for txn in candidates:
            txn.attach_metadata(
                {
                    "retry_flagged_at": now.isoformat(),
                    "retry_reason": txn.failure_reason or "Payment failed",
                }
            )
            txn.save(update_fields=["metadata", "version", "updated_at"])
            flagged += 1

        if flagged:
            cls.get_logger().info("Failed payments flagged for retry", extra={"count": flagged})
        return flagged
