"""
Tests for PaymentPlan and PaymentInstallment models.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from debts.exceptions import (
    AlreadyActiveError,
    AlreadyPaidError,
    DuplicateSequenceError,
    InvalidAmountError,
    InvalidScheduleError,
    InvalidTransitionError,
    LedgerValidationError,
)
from debts.models import PaymentPlan
from debts.state_machines import (
    InstallmentStatus,
    PaymentFrequency,
    PaymentPlanStatus,
    PaymentPlanType,
)
from debts.tests.factories import PaymentPlanFactory


@pytest.mark.django_db
class TestPaymentPlanCreate:
    """Tests for PaymentPlan.create()."""

    def test_create_builds_draft_with_reference(self, active_debt):
        """Should build an unsaved draft priced at the debt's total."""
        plan = PaymentPlan.create(
            active_debt,
            PaymentPlanType.SYSTEM_GENERATED,
            PaymentFrequency.WEEKLY,
            timezone.now(),
        )

        assert plan._state.adding
        assert plan.status == PaymentPlanStatus.DRAFT
        assert plan.reference.startswith("PP-")
        assert plan.original_amount == Decimal("5000.00")

    def test_custom_plan_reference_prefix(self, active_debt):
        """Should prefix custom plan references with PP-CUSTOM."""
        plan = PaymentPlan.create(
            active_debt,
            PaymentPlanType.CUSTOM,
            PaymentFrequency.MONTHLY,
            timezone.now(),
        )

        assert plan.reference.startswith("PP-CUSTOM-")

    def test_unknown_frequency_rejected(self, active_debt):
        """Should reject frequencies outside the enumeration."""
        with pytest.raises(LedgerValidationError):
            PaymentPlan.create(active_debt, PaymentPlanType.CUSTOM, "daily", timezone.now())


@pytest.mark.django_db
class TestScheduling:
    """Tests for scheduling installments."""

    def test_totals_follow_schedule(self, draft_plan, plan_start):
        """Should recalculate count, amount, total and end date."""
        assert draft_plan.installment_count == 10
        assert draft_plan.installment_amount == Decimal("500.00")
        assert draft_plan.total_payable == Decimal("5000.00")
        assert draft_plan.end_date == plan_start + timedelta(weeks=9)

    def test_duplicate_sequence_rejected(self, active_debt):
        """Should reject scheduling sequence 3 twice."""
        plan = PaymentPlanFactory(debt=active_debt)
        due = timezone.now() + timedelta(days=7)
        plan.schedule_installment(3, due, Decimal("100.00"))

        with pytest.raises(DuplicateSequenceError) as exc_info:
            plan.schedule_installment(3, due, Decimal("100.00"))

        assert exc_info.value.details["sequence"] == 3
        assert plan.installments.count() == 1

    def test_sequence_starts_at_one(self, active_debt):
        """Should reject sequence 0."""
        plan = PaymentPlanFactory(debt=active_debt)

        with pytest.raises(InvalidScheduleError):
            plan.schedule_installment(0, timezone.now(), Decimal("100.00"))

    def test_non_positive_amount_rejected(self, active_debt):
        """Should reject a zero installment amount."""
        plan = PaymentPlanFactory(debt=active_debt)

        with pytest.raises(InvalidAmountError):
            plan.schedule_installment(1, timezone.now(), Decimal("0"))

    def test_unsaved_plan_cannot_schedule(self, active_debt):
        """Should require the plan to be saved first."""
        plan = PaymentPlan.create(
            active_debt,
            PaymentPlanType.SYSTEM_GENERATED,
            PaymentFrequency.WEEKLY,
            timezone.now(),
        )

        with pytest.raises(LedgerValidationError):
            plan.schedule_installment(1, timezone.now(), Decimal("100.00"))

    def test_down_payment_included_in_total(self, draft_plan):
        """Should add the down payment to the total payable."""
        draft_plan.set_down_payment(Decimal("250.00"))

        assert draft_plan.total_payable == Decimal("5250.00")
        assert draft_plan.down_payment_due_at == draft_plan.start_date

    def test_discount_cannot_exceed_original(self, draft_plan):
        """Should reject a discount above the original amount."""
        with pytest.raises(InvalidAmountError):
            draft_plan.apply_discount(Decimal("5000.01"))

    def test_discount_not_deducted_from_scheduled_total(self, draft_plan):
        """Should keep total_payable at the scheduled amounts after a discount."""
        draft_plan.apply_discount(Decimal("500.00"))
        draft_plan.recalculate_totals()

        assert draft_plan.discount_amount == Decimal("500.00")
        assert draft_plan.total_payable == Decimal("5000.00")

    def test_discounted_schedule_total(self, active_debt):
        """Should equal the pre-discount amount times the count less the discount."""
        plan = PaymentPlan.create(
            active_debt,
            PaymentPlanType.SYSTEM_GENERATED,
            PaymentFrequency.WEEKLY,
            timezone.now(),
        )
        plan.save()
        plan.apply_discount(Decimal("250.00"))
        for sequence in range(1, 6):
            plan.schedule_installment(
                sequence,
                plan.start_date + timedelta(weeks=sequence - 1),
                Decimal("950.00"),
            )

        assert plan.total_payable == Decimal("1000.00") * 5 - plan.discount_amount

    def test_remove_unpaid_installment(self, draft_plan):
        """Should delete an unpaid installment and recalculate totals."""
        draft_plan.remove_installment(10)

        assert draft_plan.installment_count == 9
        assert draft_plan.total_payable == Decimal("4500.00")

    def test_terminal_plan_schedule_is_frozen(self, draft_plan):
        """Should reject schedule changes on a cancelled plan."""
        draft_plan.cancel("Debtor withdrew")
        draft_plan.save()

        with pytest.raises(InvalidTransitionError):
            draft_plan.schedule_installment(11, timezone.now(), Decimal("10.00"))


@pytest.mark.django_db
class TestPlanLifecycle:
    """Tests for plan activation, completion, default and cancel."""

    def test_activate_records_approver(self, draft_plan):
        """Should activate and record who approved it."""
        draft_plan.activate(by_user_id="agent-3")

        assert draft_plan.status == PaymentPlanStatus.ACTIVE
        assert draft_plan.approved_by == "agent-3"
        assert draft_plan.activated_at is not None

    def test_activate_twice_raises(self, active_plan):
        """Should raise AlreadyActiveError for an active plan."""
        with pytest.raises(AlreadyActiveError):
            active_plan.activate()

    def test_activate_without_installments_raises(self, active_debt):
        """Should refuse to activate an empty schedule."""
        plan = PaymentPlanFactory(debt=active_debt)

        with pytest.raises(InvalidScheduleError):
            plan.activate()

        assert plan.status == PaymentPlanStatus.DRAFT

    def test_review_flagged_plan_needs_approver(self, draft_plan):
        """Should require an approver once flagged for review."""
        draft_plan.require_manual_review()
        assert draft_plan.status == PaymentPlanStatus.PENDING_APPROVAL

        with pytest.raises(LedgerValidationError):
            draft_plan.activate()

        draft_plan.activate(by_user_id="supervisor-1")
        assert draft_plan.status == PaymentPlanStatus.ACTIVE

    def test_complete_with_open_installments_raises(self, active_plan):
        """Should list the open sequences when completion is refused."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            active_plan.complete()

        assert exc_info.value.details["open_sequences"] == list(range(1, 11))

    def test_six_installment_round_trip(self, active_debt):
        """Should be completable after each of six installments is paid in full."""
        plan = PaymentPlanFactory(debt=active_debt)
        start = timezone.now()
        for sequence in range(1, 7):
            plan.schedule_installment(sequence, start + timedelta(weeks=sequence), Decimal("500.00"))
        assert plan.installment_count == 6
        assert plan.installment_amount == Decimal("500.00")
        plan.activate()
        plan.save()

        for installment in plan.installments.all():
            installment.register_payment(Decimal("500.00"))
            installment.save()
            active_debt.apply_payment(Decimal("500.00"))
        active_debt.save()

        assert plan.is_eligible_for_completion
        plan.complete()
        plan.save()
        assert plan.status == PaymentPlanStatus.COMPLETED
        assert plan.amount_paid == Decimal("3000.00")
        assert active_debt.outstanding_principal == Decimal("2000.00")

    def test_skipped_installments_count_as_settled(self, active_plan):
        """Should allow completion when every installment is paid or skipped."""
        for installment in active_plan.installments.all():
            installment.skip("Paid outside the plan")
            installment.save()

        assert active_plan.is_eligible_for_completion

    def test_cancel_cancels_open_installments(self, active_plan):
        """Should cancel the plan and every open installment."""
        first = active_plan.installments.get(sequence=1)
        first.register_payment(Decimal("500.00"))
        first.save()

        cancelled = active_plan.cancel("Debt written off")
        active_plan.save()

        assert active_plan.status == PaymentPlanStatus.CANCELLED
        assert len(cancelled) == 9
        assert active_plan.installments.get(sequence=1).status == InstallmentStatus.PAID
        assert active_plan.installments.filter(status=InstallmentStatus.CANCELLED).count() == 9

    def test_default_records_reason(self, active_plan):
        """Should default an active plan and note why."""
        active_plan.mark_defaulted(reason="3 installments missed")

        assert active_plan.status == PaymentPlanStatus.DEFAULTED
        assert "3 installments missed" in active_plan.notes

    def test_overdue_installments_respect_grace(self, active_plan, plan_start):
        """Should only report installments past due plus grace days."""
        as_of = plan_start + timedelta(days=3)
        assert list(active_plan.overdue_installments(as_of).values_list("sequence", flat=True)) == [1]

        active_plan.set_grace_period(5)
        assert not active_plan.overdue_installments(as_of).exists()


@pytest.mark.django_db
class TestInstallmentPayments:
    """Tests for PaymentInstallment.register_payment() and friends."""

    @pytest.fixture
    def installment(self, active_plan):
        return active_plan.installments.get(sequence=1)

    def test_partial_then_full(self, installment):
        """Should be partial until the amount due is reached, then paid."""
        installment.register_payment(Decimal("200.00"))
        assert installment.status == InstallmentStatus.PARTIAL
        assert installment.remaining == Decimal("300.00")

        installment.register_payment(Decimal("299.99"))
        assert installment.status == InstallmentStatus.PARTIAL

        installment.register_payment(Decimal("0.01"))
        assert installment.status == InstallmentStatus.PAID
        assert installment.amount_paid == Decimal("500.00")
        assert installment.paid_at is not None

    def test_payment_above_remaining_rejected(self, installment):
        """Should reject an amount larger than what is left."""
        installment.register_payment(Decimal("400.00"))

        with pytest.raises(InvalidAmountError):
            installment.register_payment(Decimal("100.01"))

        assert installment.amount_paid == Decimal("400.00")

    def test_paid_installment_rejects_payment(self, installment):
        """Should raise AlreadyPaidError once paid."""
        installment.register_payment(Decimal("500.00"))

        with pytest.raises(AlreadyPaidError):
            installment.register_payment(Decimal("1.00"))
        with pytest.raises(AlreadyPaidError):
            installment.mark_failed("Card declined")

    def test_failed_installment_can_still_be_paid(self, installment):
        """Should count failures and accept a later payment."""
        installment.mark_failed("Insufficient funds")
        installment.mark_failed("Insufficient funds")
        assert installment.status == InstallmentStatus.FAILED
        assert installment.failed_attempts == 2

        installment.register_payment(Decimal("500.00"))
        assert installment.status == InstallmentStatus.PAID

    def test_late_fee_recorded(self, installment):
        """Should add the late fee to what is payable, not to the amount due."""
        installment.apply_late_fee(Decimal("35.00"))

        assert installment.late_fee_amount == Decimal("35.00")
        assert installment.late_fee_applied_at is not None
        assert installment.amount_due == Decimal("500.00")
        assert installment.remaining == Decimal("535.00")

    def test_payment_covers_amount_due_and_late_fee(self, installment):
        """Should accept the amount due plus the late fee in one payment."""
        installment.apply_late_fee(Decimal("35.00"))

        credited = installment.register_payment(Decimal("535.00"))

        assert credited == Decimal("535.00")
        assert installment.status == InstallmentStatus.PAID
        assert installment.amount_paid == Decimal("535.00")
        assert installment.remaining == Decimal("0.00")

    def test_paid_once_amount_due_reached_despite_late_fee(self, installment):
        """Should flip to paid at the amount due and reject more than due plus fee."""
        installment.apply_late_fee(Decimal("35.00"))

        with pytest.raises(InvalidAmountError):
            installment.register_payment(Decimal("535.01"))

        installment.register_payment(Decimal("500.00"))
        assert installment.status == InstallmentStatus.PAID
        assert installment.remaining == Decimal("35.00")

    def test_is_overdue(self, installment):
        """Should be overdue only after due date plus grace days."""
        after_due = installment.due_at + timedelta(days=2)

        assert installment.is_overdue(after_due)
        assert not installment.is_overdue(after_due, grace_days=3)
        assert not installment.is_overdue(installment.due_at - timedelta(days=1))

    def test_reschedule_closed_installment_raises(self, installment):
        """Should not move the due date of a paid installment."""
        installment.register_payment(Decimal("500.00"))

        with pytest.raises(InvalidTransitionError):
            installment.reschedule(timezone.now())
