"""
Tests for payment plan option generation and custom plans.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from debts.exceptions import DebtClosedError, InvalidScheduleError
from debts.models import PaymentPlan
from debts.services import PaymentPlanGenerator
from debts.services.plan_generation import (
    infer_frequency,
    smart_admin_fee,
    smart_installments,
    weekly_schedule,
)
from debts.state_machines import PaymentFrequency, PaymentPlanStatus, PaymentPlanType
from debts.types import CustomInstallment
from organizations.models import OrganizationFeeConfiguration


@pytest.fixture
def default_config():
    """Unsaved fee configuration holding the model defaults."""
    return OrganizationFeeConfiguration()


class TestSmartInstallments:
    """Tests for smart_installments()."""

    @pytest.mark.parametrize(
        ("total", "expected"),
        [
            (Decimal("4750.00"), (12, Decimal("400.00"))),
            (Decimal("300.00"), (6, Decimal("50.00"))),
            (Decimal("45.00"), (1, Decimal("45.00"))),
            (Decimal("17.30"), (1, Decimal("18.00"))),
        ],
    )
    def test_round_amounts(self, total, expected):
        """Should pick a count and round the amount to a friendly step."""
        assert smart_installments(total, Decimal("50.00"), 12, 52) == expected

    def test_max_installments_caps_count(self):
        """Should never exceed the maximum installment count."""
        count, amount = smart_installments(Decimal("10000.00"), Decimal("50.00"), 52, 4)

        assert count == 4
        assert amount == Decimal("2500.00")


class TestSmartAdminFee:
    """Tests for smart_admin_fee()."""

    @pytest.mark.parametrize(
        ("total", "count", "expected"),
        [
            # 25 + 2% of 5000 = 125 over 4 installments is 31.25
            (Decimal("5000.00"), 4, Decimal("35.00")),
            # 25 + 2% of 1000 = 45 over 10 installments is 4.50
            (Decimal("1000.00"), 10, Decimal("5.00")),
            # 25 + 2% of 100 = 27 over 52 installments is 0.52
            (Decimal("100.00"), 52, Decimal("1.00")),
        ],
    )
    def test_fee_rounding(self, default_config, total, count, expected):
        """Should spread and round the configured admin fee."""
        assert smart_admin_fee(total, count, default_config) == expected


class TestScheduleHelpers:
    """Tests for weekly_schedule() and infer_frequency()."""

    def test_last_installment_takes_remainder(self):
        """Should make the schedule add up to the total exactly."""
        first_due = timezone.now()

        schedule = weekly_schedule(Decimal("4750.00"), 12, Decimal("400.00"), first_due)

        assert len(schedule) == 12
        assert schedule[-1].amount == Decimal("350.00")
        assert sum(item.amount for item in schedule) == Decimal("4750.00")
        assert schedule[1].due_at == first_due + timedelta(weeks=1)

    @pytest.mark.parametrize(
        ("gap_days", "expected"),
        [
            (7, PaymentFrequency.WEEKLY),
            (14, PaymentFrequency.FORTNIGHTLY),
            (30, PaymentFrequency.MONTHLY),
        ],
    )
    def test_infer_frequency(self, gap_days, expected):
        """Should infer frequency from the gap between the first two dates."""
        start = timezone.now()

        assert infer_frequency([start, start + timedelta(days=gap_days)]) == expected

    def test_single_date_is_one_off(self):
        """Should treat a single payment as one-off."""
        assert infer_frequency([timezone.now()]) == PaymentFrequency.ONE_OFF


@pytest.mark.django_db
class TestGenerateOptions:
    """Tests for PaymentPlanGenerator.generate_options()."""

    def test_three_options_for_5000(self, active_debt):
        """Should offer full payment, a weekly plan and a custom template."""
        now = timezone.now()

        full, system, custom = PaymentPlanGenerator.generate_options(active_debt, now=now)

        assert full.plan_type == PaymentPlanType.FULL_SETTLEMENT
        assert full.discount_amount == Decimal("500.00")
        assert full.total_payable == Decimal("4500.00")
        assert full.is_recommended
        assert full.installments[0].due_at == now + timedelta(days=1)

        assert system.plan_type == PaymentPlanType.SYSTEM_GENERATED
        assert system.discount_amount == Decimal("250.00")
        assert system.installment_count == 12
        assert system.installment_amount == Decimal("400.00")
        assert system.first_payment_at == now + timedelta(days=7)

        assert custom.plan_type == PaymentPlanType.CUSTOM
        assert custom.requires_approval
        assert custom.admin_fee_amount == Decimal("25.00")
        assert custom.installments == []

    def test_options_use_stored_configuration(self, active_debt, fee_configuration):
        """Should price options with the organization's own discounts."""
        fee_configuration.update_discounts(Decimal("20.00"), Decimal("0.00"))
        fee_configuration.save()

        full, system, _custom = PaymentPlanGenerator.generate_options(active_debt)

        assert full.total_payable == Decimal("4000.00")
        assert system.discount_amount == Decimal("0.00")

    def test_closed_debt_has_no_options(self, settled_debt):
        """Should refuse to offer plans for a settled debt."""
        with pytest.raises(DebtClosedError):
            PaymentPlanGenerator.generate_options(settled_debt)

    def test_create_plan_from_system_option(self, active_debt):
        """Should create a draft plan matching the option's schedule."""
        _full, system, _custom = PaymentPlanGenerator.generate_options(active_debt)

        plan = PaymentPlanGenerator.create_plan_from_option(active_debt.id, system, created_by="debtor-1")

        plan = PaymentPlan.objects.get(pk=plan.pk)
        assert plan.status == PaymentPlanStatus.DRAFT
        assert plan.installment_count == 12
        assert plan.total_payable == Decimal("4750.00")
        assert plan.discount_amount == Decimal("250.00")
        assert plan.original_amount == Decimal("5000.00")

    def test_custom_template_cannot_become_plan(self, active_debt):
        """Should require create_custom_plan() for the custom template."""
        *_, custom = PaymentPlanGenerator.generate_options(active_debt)

        with pytest.raises(InvalidScheduleError):
            PaymentPlanGenerator.create_plan_from_option(active_debt.id, custom)


@pytest.mark.django_db
class TestCustomPlan:
    """Tests for PaymentPlanGenerator.create_custom_plan()."""

    def _schedule(self, count, amount, gap_days=7):
        start = timezone.now() + timedelta(days=3)
        return [
            CustomInstallment(due_at=start + timedelta(days=gap_days * index), amount=Decimal(amount))
            for index in range(count)
        ]

    def test_custom_plan_adds_admin_fee(self, active_debt):
        """Should add the smart admin fee to every installment."""
        plan = PaymentPlanGenerator.create_custom_plan(active_debt.id, self._schedule(4, "1250.00"))

        plan = PaymentPlan.objects.get(pk=plan.pk)
        assert plan.plan_type == PaymentPlanType.CUSTOM
        assert plan.status == PaymentPlanStatus.PENDING_APPROVAL
        assert plan.frequency == PaymentFrequency.WEEKLY
        assert plan.admin_fee_amount == Decimal("140.00")
        assert plan.total_payable == Decimal("5140.00")
        assert set(plan.installments.values_list("amount_due", flat=True)) == {Decimal("1285.00")}
        assert plan.reference.startswith("PP-CUSTOM-")

    def test_fortnightly_schedule(self, active_debt):
        """Should infer fortnightly frequency from a 14 day gap."""
        plan = PaymentPlanGenerator.create_custom_plan(active_debt.id, self._schedule(2, "2500.00", gap_days=14))

        assert plan.frequency == PaymentFrequency.FORTNIGHTLY

    def test_empty_schedule_rejected(self, active_debt):
        """Should reject an empty schedule."""
        with pytest.raises(InvalidScheduleError):
            PaymentPlanGenerator.create_custom_plan(active_debt.id, [])

    def test_short_schedule_rejected(self, active_debt):
        """Should reject a schedule that does not cover the principal."""
        with pytest.raises(InvalidScheduleError) as exc_info:
            PaymentPlanGenerator.create_custom_plan(active_debt.id, self._schedule(4, "1000.00"))

        assert exc_info.value.details["outstanding"] == "5000.00"

    def test_tiny_installment_rejected(self, active_debt):
        """Should reject installments under half the minimum installment."""
        schedule = self._schedule(2, "2490.00") + self._schedule(1, "20.00")

        with pytest.raises(InvalidScheduleError) as exc_info:
            PaymentPlanGenerator.create_custom_plan(active_debt.id, schedule)

        assert exc_info.value.details["sequences"] == [3]

    def test_too_many_installments_rejected(self, active_debt):
        """Should reject more installments than the configured maximum."""
        with pytest.raises(InvalidScheduleError):
            PaymentPlanGenerator.create_custom_plan(active_debt.id, self._schedule(53, "100.00"))

    def test_closed_debt_rejected(self, written_off_debt):
        """Should refuse custom plans for a written off debt."""
        with pytest.raises(DebtClosedError):
            PaymentPlanGenerator.create_custom_plan(written_off_debt.id, self._schedule(4, "1250.00"))

        assert not PaymentPlan.objects.filter(debt=written_off_debt).exists()
