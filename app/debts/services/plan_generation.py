"""
Payment plan options offered to a debtor.

PaymentPlanGenerator turns an organization's fee configuration into three
repayment options for a debt:

1. Full payment: one installment tomorrow, full payment discount, recommended
2. System plan: weekly installments with the system plan discount
3. Custom template: the debtor proposes dates and amounts; admin fees apply
   and the plan needs approval

Installment amounts are kept to round numbers so debtors never see
schedules like 37 payments of 13.51.

Usage:
    from debts.services import PaymentPlanGenerator

    options = PaymentPlanGenerator.generate_options(debt)
    plan = PaymentPlanGenerator.create_plan_from_option(debt.id, options[1], created_by="debtor-42")
"""

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_CEILING, Decimal
from typing import TYPE_CHECKING

from django.utils import timezone

from core.money import ZERO, round_money, round_up_to_step, to_decimal
from core.services import BaseService
from debts.exceptions import DebtClosedError, InvalidScheduleError
from debts.services.debt_service import DebtService
from debts.services.plan_service import PaymentPlanService
from debts.state_machines import PaymentFrequency, PaymentPlanType
from debts.types import CustomInstallment, InstallmentPreview, PaymentPlanOption
from organizations.services import FeeConfigurationService

if TYPE_CHECKING:
    from datetime import datetime

    from debts.models import Debt, PaymentPlan
    from organizations.models import OrganizationFeeConfiguration


def _ceil(value: Decimal) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_CEILING))


def smart_installments(
    total: Decimal,
    minimum_installment: Decimal,
    target_weeks: int,
    max_installments: int,
) -> tuple[int, Decimal]:
    """
    Choose an installment count and a round installment amount.

    The count aims for installments no smaller than ``minimum_installment``,
    capped by ``target_weeks`` and ``max_installments``. The amount is
    rounded up to a multiple of 10 (100 and above), 5 (20 and above) or 1,
    then the count is recomputed for the rounded amount.

    Returns:
        (count, amount); the last installment of a schedule takes the remainder
    """
    total = round_money(total)
    count = _ceil(total / to_decimal(minimum_installment))
    count = max(1, min(count, target_weeks, max_installments))

    base = total / count
    if base >= 100:
        amount = round_up_to_step(base, 10)
    elif base >= 20:
        amount = round_up_to_step(base, 5)
    else:
        amount = round_up_to_step(base, 1)

    count = max(1, min(_ceil(total / amount), max_installments))
    return count, round_money(amount)


def smart_admin_fee(total: Decimal, count: int, config: OrganizationFeeConfiguration) -> Decimal:
    """
    Admin fee charged on each installment of a custom plan.

    The configured fee (flat plus percentage of ``total``) is spread evenly,
    then rounded: under 1 becomes 1, 5 and above rounds up to a multiple
    of 5, anything else rounds up to a whole unit.
    """
    per_installment = config.custom_plan_admin_fee(total) / count
    if per_installment < 1:
        return round_money(1)
    if per_installment >= 5:
        return round_money(round_up_to_step(per_installment, 5))
    return round_money(round_up_to_step(per_installment, 1))


def weekly_schedule(total: Decimal, count: int, amount: Decimal, first_due: datetime) -> list[InstallmentPreview]:
    schedule = []
    for index in range(count):
        is_last = index == count - 1
        schedule.append(
            InstallmentPreview(
                sequence=index + 1,
                due_at=first_due + timedelta(weeks=index),
                amount=round_money(total - amount * (count - 1)) if is_last else amount,
            )
        )
    return schedule


def infer_frequency(due_dates: list[datetime]) -> str:
    if len(due_dates) < 2:
        return PaymentFrequency.ONE_OFF
    gap = (due_dates[1] - due_dates[0]).days
    if gap <= 7:
        return PaymentFrequency.WEEKLY
    if gap <= 14:
        return PaymentFrequency.FORTNIGHTLY
    return PaymentFrequency.MONTHLY


class PaymentPlanGenerator(BaseService):
    """
    Builds repayment options and turns a chosen option into a draft plan.

    Options are priced against the outstanding principal, which is what
    payments reduce.
    """

    @classmethod
    def generate_options(cls, debt: Debt, now: datetime | None = None) -> list[PaymentPlanOption]:
        """
        Return the full payment, system plan and custom template options.

        Raises:
            DebtClosedError: If the debt is settled or written off
        """
        debt.ensure_open("offer payment plans")
        now = now or timezone.now()
        config = FeeConfigurationService.get_for_organization(debt.organization_id)
        total = round_money(debt.outstanding_principal)
        if total <= ZERO:
            return []

        options = [
            cls.full_payment_option(total, config, now),
            cls.system_plan_option(total, config, now),
            cls.custom_plan_template(total, config, now),
        ]
        cls.get_logger().debug(
            "Generated payment plan options",
            extra={"debt_id": str(debt.id), "options": len(options)},
        )
        return options

    @classmethod
    def full_payment_option(
        cls,
        total: Decimal,
        config: OrganizationFeeConfiguration,
        now: datetime,
    ) -> PaymentPlanOption:
        discount = config.full_payment_discount(total)
        payable = round_money(total - discount)
        return PaymentPlanOption(
            plan_type=PaymentPlanType.FULL_SETTLEMENT,
            frequency=PaymentFrequency.ONE_OFF,
            title="Pay in full with discount",
            description="Pay the entire debt now and receive the largest discount",
            original_amount=total,
            discount_amount=discount,
            total_payable=payable,
            installment_amount=payable,
            installment_count=1,
            first_payment_at=now,
            installments=[InstallmentPreview(sequence=1, due_at=now + timedelta(days=1), amount=payable)],
            is_recommended=True,
        )

    @classmethod
    def system_plan_option(
        cls,
        total: Decimal,
        config: OrganizationFeeConfiguration,
        now: datetime,
    ) -> PaymentPlanOption:
        discount = config.system_plan_discount(total)
        payable = round_money(total - discount)
        count, amount = smart_installments(
            payable,
            config.minimum_installment_amount,
            config.default_installment_period_weeks,
            config.max_installment_count,
        )
        first_due = now + timedelta(days=7)
        return PaymentPlanOption(
            plan_type=PaymentPlanType.SYSTEM_GENERATED,
            frequency=PaymentFrequency.WEEKLY,
            title="Weekly payment plan",
            description=f"{count} weekly installments with a partial discount",
            original_amount=total,
            discount_amount=discount,
            total_payable=payable,
            installment_amount=amount,
            installment_count=count,
            first_payment_at=first_due,
            installments=weekly_schedule(payable, count, amount, first_due),
        )

    @classmethod
    def custom_plan_template(
        cls,
        total: Decimal,
        config: OrganizationFeeConfiguration,
        now: datetime,
    ) -> PaymentPlanOption:
        return PaymentPlanOption(
            plan_type=PaymentPlanType.CUSTOM,
            frequency=PaymentFrequency.WEEKLY,
            title="Custom payment schedule",
            description="Propose your own payment dates and amounts",
            original_amount=total,
            discount_amount=ZERO,
            total_payable=total,
            installment_amount=ZERO,
            installment_count=0,
            first_payment_at=now + timedelta(days=7),
            admin_fee_amount=round_money(config.custom_plan_admin_fee_flat),
            requires_approval=True,
        )

    @classmethod
    def create_plan_from_option(
        cls,
        debt_id,
        option: PaymentPlanOption,
        created_by: str = "",
    ) -> PaymentPlan:
        """
        Create a draft plan from a full payment or system plan option.

        Custom options carry no schedule; use create_custom_plan() instead.

        Raises:
            InvalidScheduleError: If the option has no installments
        """
        if not option.installments:
            raise InvalidScheduleError(
                "Option has no installment schedule",
                details={"plan_type": option.plan_type},
            )
        return PaymentPlanService.create_plan(
            debt_id,
            option.plan_type,
            option.frequency,
            option.first_payment_at,
            installments=[CustomInstallment(due_at=item.due_at, amount=item.amount) for item in option.installments],
            created_by=created_by,
            original_amount=option.original_amount,
            discount_amount=option.discount_amount if option.plan_type != PaymentPlanType.CUSTOM else None,
            requires_manual_review=option.requires_approval,
        )

    @classmethod
    def validate_custom_schedule(
        cls,
        debt: Debt,
        schedule: list[CustomInstallment],
        config: OrganizationFeeConfiguration,
    ) -> None:
        """
        Reject schedules that are empty, short, fragmented or too long.

        Raises:
            InvalidScheduleError: Describing the first rule broken
        """
        if not schedule:
            raise InvalidScheduleError("Custom schedule cannot be empty")

        scheduled = round_money(sum((to_decimal(item.amount) for item in schedule), ZERO))
        if scheduled < debt.outstanding_principal:
            raise InvalidScheduleError(
                "Custom schedule does not cover the amount owed",
                details={"scheduled": str(scheduled), "outstanding": str(debt.outstanding_principal)},
            )

        smallest_allowed = round_money(to_decimal(config.minimum_installment_amount) / 2)
        too_small = [index + 1 for index, item in enumerate(schedule) if to_decimal(item.amount) < smallest_allowed]
        if too_small:
            raise InvalidScheduleError(
                f"Installments must be at least {debt.currency} {smallest_allowed:.2f}",
                details={"sequences": too_small, "minimum": str(smallest_allowed)},
            )

        if len(schedule) > config.max_installment_count:
            raise InvalidScheduleError(
                f"Payment plan cannot exceed {config.max_installment_count} installments",
                details={"count": len(schedule), "maximum": config.max_installment_count},
            )

    @classmethod
    def create_custom_plan(
        cls,
        debt_id,
        schedule: list[CustomInstallment],
        created_by: str = "",
    ) -> PaymentPlan:
        """
        Create a debtor-proposed plan awaiting approval.

        Each installment is increased by the smart admin fee.

        Raises:
            DebtClosedError: If the debt is settled or written off
            InvalidScheduleError: If the schedule breaks a rule
        """
        debt = DebtService.get_debt(debt_id)
        if debt.is_terminal:
            raise DebtClosedError(
                f"Cannot create a payment plan: debt is {debt.status}",
                details={"debt_id": str(debt.id), "status": str(debt.status)},
            )
        config = FeeConfigurationService.get_for_organization(debt.organization_id)
        cls.validate_custom_schedule(debt, schedule, config)

        scheduled = round_money(sum((to_decimal(item.amount) for item in schedule), ZERO))
        fee = smart_admin_fee(scheduled, len(schedule), config)
        installments = [CustomInstallment(due_at=item.due_at, amount=round_money(item.amount) + fee) for item in schedule]

        plan = PaymentPlanService.create_plan(
            debt_id,
            PaymentPlanType.CUSTOM,
            infer_frequency([item.due_at for item in schedule]),
            schedule[0].due_at,
            installments=installments,
            created_by=created_by,
            original_amount=debt.outstanding_principal,
            admin_fee_amount=fee * len(schedule),
            requires_manual_review=True,
            notes=(
                f"Custom payment plan with {len(schedule)} installments. "
                f"Admin fee per installment: {debt.currency} {fee:.2f}"
            ),
        )
        cls.get_logger().info(
            "Custom payment plan proposed",
            extra={"debt_id": str(debt_id), "plan_id": str(plan.id), "admin_fee": str(fee)},
        )
        return plan
