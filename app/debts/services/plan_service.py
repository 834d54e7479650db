"""
Payment plan use cases.

Plans are mutated under the lock of the debt they belong to, so a plan
change and a payment on the same debt never interleave.

Usage:
    from debts.services import PaymentPlanService

    plan = PaymentPlanService.create_plan(
        debt.id,
        PaymentPlanType.SYSTEM_GENERATED,
        PaymentFrequency.WEEKLY,
        start_date=timezone.now(),
        installments=[CustomInstallment(due_at, Decimal("250.00")), ...],
    )
    PaymentPlanService.activate_plan(plan.id)
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.money import ZERO, round_money
from core.services import BaseService
from debts.exceptions import AlreadyActiveError, PaymentPlanNotFoundError
from debts.models import PaymentPlan
from debts.services.debt_service import locked_debt, notify_status_change
from debts.signals import (
    payment_plan_activated,
    payment_plan_completed,
    payment_plan_defaulted,
    send_on_commit,
)
from debts.state_machines import DebtStatus, PaymentPlanStatus

if TYPE_CHECKING:
    from collections.abc import Generator, Iterable
    from datetime import datetime

    from debts.models import Debt
    from debts.types import CustomInstallment


@contextmanager
def locked_plan(plan_id) -> Generator[tuple[Debt, PaymentPlan], None, None]:
    """Yield ``(debt, plan)`` with the debt lock held and both rows locked."""
    debt_id = PaymentPlan.objects.filter(pk=plan_id).values_list("debt_id", flat=True).first()
    if debt_id is None:
        raise PaymentPlanNotFoundError(
            f"Payment plan {plan_id} not found",
            details={"plan_id": str(plan_id)},
        )
    with locked_debt(debt_id) as debt:
        plan = PaymentPlan.objects.select_for_update().get(pk=plan_id)
        yield debt, plan


def finish_plan(debt: Debt, plan: PaymentPlan, at: datetime | None = None) -> bool:
    """
    Complete ``plan`` and forgive its discount on the debt.

    The discount was never scheduled as installments, so whatever the debt
    still owes up to the discount is waived. Caller holds the debt lock and
    saves both rows.

    Returns:
        True if the waiver settled the debt
    """
    plan.complete(at)
    send_on_commit(payment_plan_completed, sender=PaymentPlan, plan=plan)
    if not plan.discount_amount or debt.is_terminal:
        return False
    waiver = min(round_money(plan.discount_amount), debt.total_outstanding)
    if waiver <= ZERO:
        return False
    return debt.waive(waiver, f"Payment plan {plan.reference} discount", at)


class PaymentPlanService(BaseService):
    """Use cases for payment plans and their installment schedules."""

    @classmethod
    def get_plan(cls, plan_id) -> PaymentPlan:
        plan = PaymentPlan.objects.filter(pk=plan_id).first()
        if plan is None:
            raise PaymentPlanNotFoundError(
                f"Payment plan {plan_id} not found",
                details={"plan_id": str(plan_id)},
            )
        return plan

    @classmethod
    def create_plan(
        cls,
        debt_id,
        plan_type: str,
        frequency: str,
        start_date: datetime,
        *,
        installments: Iterable[CustomInstallment] = (),
        created_by: str = "",
        grace_period_in_days: int = 0,
        original_amount=None,
        discount_amount=None,
        admin_fee_amount=None,
        down_payment_amount=None,
        down_payment_due_at: datetime | None = None,
        requires_manual_review: bool = False,
        notes: str = "",
    ) -> PaymentPlan:
        """
        Create a draft plan with its schedule in one transaction.

        Installments are numbered 1..n in the order given.

        Raises:
            DebtClosedError: If the debt is settled or written off
            InvalidAmountError / InvalidScheduleError: For a bad schedule
        """
        with locked_debt(debt_id) as debt:
            debt.ensure_open("create a payment plan")
            plan = PaymentPlan.create(
                debt,
                plan_type,
                frequency,
                start_date,
                created_by=created_by,
                grace_period_in_days=grace_period_in_days,
                original_amount=original_amount,
            )
            plan.notes = notes
            plan.save()

            for sequence, installment in enumerate(installments, start=1):
                plan.schedule_installment(sequence, installment.due_at, installment.amount)
            if discount_amount:
                plan.apply_discount(discount_amount)
            if admin_fee_amount:
                plan.admin_fee_amount = round_money(admin_fee_amount)
            if down_payment_amount:
                plan.set_down_payment(down_payment_amount, down_payment_due_at)
            if requires_manual_review:
                plan.require_manual_review()
            plan.save()

        cls.get_logger().info(
            "Payment plan created",
            extra={
                "debt_id": str(debt_id),
                "plan_id": str(plan.id),
                "plan_type": plan_type,
                "installment_count": plan.installment_count,
                "total_payable": str(plan.total_payable),
            },
        )
        return plan

    @classmethod
    def schedule_installment(cls, plan_id, sequence: int, due_at: datetime, amount_due):
        with locked_plan(plan_id) as (_debt, plan):
            installment = plan.schedule_installment(sequence, due_at, amount_due)
            plan.save()
        return installment

    @classmethod
    def activate_plan(cls, plan_id, by_user_id: str = "", at: datetime | None = None) -> PaymentPlan:
        """
        Activate a plan, assigning its debt if still pending.

        Raises:
            DebtClosedError: If the debt is settled or written off
            AlreadyActiveError: If this or another plan on the debt is active
            InvalidScheduleError: If the plan has no installments
        """
        at = at or timezone.now()
        with locked_plan(plan_id) as (debt, plan):
            debt.ensure_open("activate a payment plan")
            other_active = debt.payment_plans.filter(status=PaymentPlanStatus.ACTIVE).exclude(pk=plan.pk)
            if other_active.exists():
                raise AlreadyActiveError(
                    "Debt already has an active payment plan",
                    details={"debt_id": str(debt.id), "plan_id": str(other_active.first().id)},
                )

            previous_status = debt.status
            plan.activate(by_user_id, at)
            if debt.status == DebtStatus.PENDING_ASSIGNMENT:
                debt.assign(at=at)

            try:
                with transaction.atomic():
                    plan.save()
            except IntegrityError:
                raise AlreadyActiveError(
                    "Debt already has an active payment plan",
                    details={"debt_id": str(debt.id)},
                ) from None
            debt.save()
            notify_status_change(debt, previous_status)
            send_on_commit(payment_plan_activated, sender=PaymentPlan, plan=plan)

        cls.get_logger().info(
            "Payment plan activated",
            extra={"plan_id": str(plan.id), "debt_id": str(debt.id), "approved_by": by_user_id},
        )
        return plan

    @classmethod
    def complete_plan(cls, plan_id, at: datetime | None = None) -> PaymentPlan:
        """
        Complete a plan whose installments are all settled.

        Raises:
            InvalidTransitionError: If the plan is not active or has open installments
        """
        with locked_plan(plan_id) as (debt, plan):
            previous_status = debt.status
            finish_plan(debt, plan, at)
            plan.save()
            debt.save()
            notify_status_change(debt, previous_status)

        cls.get_logger().info(
            "Payment plan completed",
            extra={"plan_id": str(plan.id), "debt_id": str(debt.id), "debt_status": str(debt.status)},
        )
        return plan

    @classmethod
    def default_plan(cls, plan_id, reason: str = "", at: datetime | None = None) -> PaymentPlan:
        with locked_plan(plan_id) as (debt, plan):
            plan.mark_defaulted(at, reason)
            plan.save()
            send_on_commit(payment_plan_defaulted, sender=PaymentPlan, plan=plan, reason=reason)

        cls.get_logger().warning(
            "Payment plan defaulted",
            extra={"plan_id": str(plan.id), "debt_id": str(debt.id), "reason": reason},
        )
        return plan

    @classmethod
    def cancel_plan(cls, plan_id, reason: str = "", at: datetime | None = None) -> PaymentPlan:
        with locked_plan(plan_id) as (debt, plan):
            cancelled = plan.cancel(reason, at)
            plan.save()

        cls.get_logger().info(
            "Payment plan cancelled",
            extra={
                "plan_id": str(plan.id),
                "debt_id": str(debt.id),
                "cancelled_installments": len(cancelled),
            },
        )
        return plan

    @classmethod
    def require_review(cls, plan_id) -> PaymentPlan:
        with locked_plan(plan_id) as (_debt, plan):
            plan.require_manual_review()
            plan.save()
        return plan
