"""
Tests for DebtService.

Redis is replaced by the autouse mock_redis_lock fixture; these tests
check that every use case runs under the debt lock, persists its changes
and sends its signals after commit.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from debts.exceptions import (
    DebtClosedError,
    DebtNotFoundError,
    InvalidAmountError,
    InvalidTransitionError,
    LockAcquisitionError,
    StaleRecordError,
)
from debts.models import Debt, PaymentPlan
from debts.services import DebtService
from debts.signals import debt_status_changed, payment_applied, settlement_accepted
from debts.state_machines import DebtStatus, InstallmentStatus, PaymentPlanStatus


@pytest.fixture
def signal_receiver():
    """Connect a MagicMock to a signal for the duration of a test."""
    connected = []

    def connect(signal):
        receiver = MagicMock()
        signal.connect(receiver, weak=False)
        connected.append((signal, receiver))
        return receiver

    yield connect

    for signal, receiver in connected:
        signal.disconnect(receiver)


@pytest.mark.django_db
class TestOpenDebt:
    """Tests for DebtService.open_debt()."""

    def test_open_debt_persists_pending_debt(self, organization, debtor):
        """Should save a pending debt in the organization's currency."""
        debt = DebtService.open_debt(organization, debtor, Decimal("5000.00"))

        stored = Debt.objects.get(pk=debt.pk)
        assert stored.status == DebtStatus.PENDING_ASSIGNMENT
        assert stored.outstanding_principal == Decimal("5000.00")
        assert stored.currency == organization.default_currency

    def test_open_debt_accepts_extra_fields(self, organization, debtor):
        """Should pass optional fields through to the debt."""
        debt = DebtService.open_debt(
            organization,
            debtor,
            Decimal("800.00"),
            currency="NZD",
            client_reference_number="INV-42",
            grace_days=3,
        )

        assert debt.currency == "NZD"
        assert debt.client_reference_number == "INV-42"
        assert debt.grace_days == 3


@pytest.mark.django_db
class TestDebtServiceLocking:
    """Tests for per-debt serialization."""

    def test_mutation_acquires_and_releases_debt_lock(self, active_debt, mock_redis_lock):
        """Should take the debt's Redis lock and release it afterwards."""
        DebtService.add_fee(active_debt.id, Decimal("10.00"), "Late fee")

        key = mock_redis_lock.set.call_args[0][0]
        assert key == f"lock:debt:{active_debt.id}"
        mock_redis_lock.eval.assert_called_once()

    def test_lock_timeout_raises(self, active_debt, mock_redis_lock, settings):
        """Should raise LockAcquisitionError when the debt is locked elsewhere."""
        settings.DEBT_LOCK_TIMEOUT_SECONDS = 0.1
        mock_redis_lock.set.return_value = False

        with pytest.raises(LockAcquisitionError):
            DebtService.add_fee(active_debt.id, Decimal("10.00"), "Late fee")

        assert Debt.objects.get(pk=active_debt.pk).accrued_fees == Decimal("0.00")

    def test_stale_version_rejected(self, active_debt):
        """Should refuse a write based on an old version."""
        stale_version = active_debt.version
        DebtService.append_note(active_debt.id, "First call")

        with pytest.raises(StaleRecordError):
            DebtService.append_note(active_debt.id, "Second call", expected_version=stale_version)

    def test_matching_version_accepted(self, active_debt):
        """Should accept a write based on the current version."""
        debt = DebtService.append_note(active_debt.id, "Called", expected_version=active_debt.version)

        assert debt.version == active_debt.version + 1
        assert "Called" in debt.notes

    def test_unknown_debt_raises(self, db):
        """Should raise DebtNotFoundError for an unknown id."""
        with pytest.raises(DebtNotFoundError):
            DebtService.assign("00000000-0000-0000-0000-000000000000")

    def test_rejected_operation_saves_nothing(self, active_debt):
        """Should leave the stored debt untouched when an operation is rejected."""
        with pytest.raises(InvalidAmountError):
            DebtService.apply_payment(active_debt.id, Decimal("-1.00"))

        stored = Debt.objects.get(pk=active_debt.pk)
        assert stored.version == active_debt.version
        assert stored.outstanding_principal == Decimal("5000.00")


@pytest.mark.django_db
class TestDebtServiceLifecycle:
    """Tests for status use cases."""

    def test_assign_sends_status_signal(
        self, pending_debt, signal_receiver, django_capture_on_commit_callbacks
    ):
        """Should send debt_status_changed after commit."""
        receiver = signal_receiver(debt_status_changed)

        with django_capture_on_commit_callbacks(execute=True):
            DebtService.assign(pending_debt.id, collector_id="agent-2")

        receiver.assert_called_once()
        kwargs = receiver.call_args.kwargs
        assert kwargs["previous_status"] == DebtStatus.PENDING_ASSIGNMENT
        assert kwargs["new_status"] == DebtStatus.ACTIVE

    def test_note_does_not_send_status_signal(
        self, active_debt, signal_receiver, django_capture_on_commit_callbacks
    ):
        """Should not send debt_status_changed when the status is unchanged."""
        receiver = signal_receiver(debt_status_changed)

        with django_capture_on_commit_callbacks(execute=True):
            DebtService.append_note(active_debt.id, "Left voicemail")

        receiver.assert_not_called()

    def test_write_off_cancels_active_plan(self, active_plan):
        """Should cancel the debt's active plan when the debt is written off."""
        debt = DebtService.write_off(active_plan.debt_id, "Bankruptcy")

        assert debt.status == DebtStatus.WRITTEN_OFF
        plan = PaymentPlan.objects.get(pk=active_plan.pk)
        assert plan.status == PaymentPlanStatus.CANCELLED

    def test_set_status_to_terminal_cancels_plan(self, active_plan):
        """Should cancel the active plan when an administrator closes the debt."""
        DebtService.set_status(active_plan.debt_id, DebtStatus.SETTLED, "Paid to creditor directly")

        plan = PaymentPlan.objects.get(pk=active_plan.pk)
        assert plan.status == PaymentPlanStatus.CANCELLED

    def test_set_status_on_closed_debt_raises(self, written_off_debt):
        """Should reject administrative changes on a terminal debt."""
        with pytest.raises(InvalidTransitionError):
            DebtService.set_status(written_off_debt.id, DebtStatus.ACTIVE)

    def test_dispute_and_resolve(self, active_debt):
        """Should flag and then resolve a dispute."""
        debt = DebtService.flag_dispute(active_debt.id, "Never received goods")
        assert debt.status == DebtStatus.DISPUTED

        debt = DebtService.resolve_dispute(active_debt.id, "Proof of delivery sent")
        assert debt.status == DebtStatus.ACTIVE


@pytest.mark.django_db
class TestDebtServiceBalances:
    """Tests for balance use cases."""

    def test_two_payments_of_500(self, active_debt):
        """Should leave 4000.00 outstanding after two payments of 500.00."""
        DebtService.apply_payment(active_debt.id, Decimal("500.00"))
        DebtService.apply_payment(active_debt.id, Decimal("500.00"))

        assert Debt.objects.get(pk=active_debt.pk).outstanding_principal == Decimal("4000.00")

    def test_payment_sends_payment_applied(
        self, active_debt, signal_receiver, django_capture_on_commit_callbacks
    ):
        """Should send payment_applied with the application after commit."""
        receiver = signal_receiver(payment_applied)

        with django_capture_on_commit_callbacks(execute=True):
            application = DebtService.apply_payment(active_debt.id, Decimal("250.00"))

        receiver.assert_called_once()
        assert receiver.call_args.kwargs["application"] == application
        assert receiver.call_args.kwargs["transaction"] is None

    def test_payment_during_dispute_succeeds(self, disputed_debt):
        """Should accept payments on a disputed debt."""
        application = DebtService.apply_payment(disputed_debt.id, Decimal("500.00"))

        assert application.applied == Decimal("500.00")
        assert Debt.objects.get(pk=disputed_debt.pk).status == DebtStatus.DISPUTED

    @pytest.mark.parametrize("debt_fixture", ["settled_debt", "written_off_debt"])
    def test_terminal_debt_rejects_balance_changes(self, request, debt_fixture):
        """Should raise DebtClosedError for payments, fees and interest."""
        debt = request.getfixturevalue(debt_fixture)

        with pytest.raises(DebtClosedError):
            DebtService.apply_payment(debt.id, Decimal("10.00"))
        with pytest.raises(DebtClosedError):
            DebtService.add_fee(debt.id, Decimal("10.00"), "Late fee")
        with pytest.raises(DebtClosedError):
            DebtService.accrue_interest(debt.id, Decimal("1.00"))

    def test_waive(self, active_debt):
        """Should waive fees first."""
        DebtService.add_fee(active_debt.id, Decimal("40.00"), "Dishonour fee")

        debt = DebtService.waive(active_debt.id, Decimal("40.00"), "Goodwill")

        assert debt.accrued_fees == Decimal("0.00")
        assert debt.outstanding_principal == Decimal("5000.00")

    def test_payoff_cancels_active_plan(self, active_plan):
        """Should cancel the active plan and its open installments when a payment clears the debt."""
        application = DebtService.apply_payment(active_plan.debt_id, Decimal("5000.00"))

        assert application.settled
        assert Debt.objects.get(pk=active_plan.debt_id).status == DebtStatus.SETTLED
        assert PaymentPlan.objects.get(pk=active_plan.pk).status == PaymentPlanStatus.CANCELLED
        assert not active_plan.installments.exclude(status=InstallmentStatus.CANCELLED).exists()

    def test_partial_payment_keeps_active_plan(self, active_plan):
        """Should leave the plan active while money is still owed."""
        DebtService.apply_payment(active_plan.debt_id, Decimal("4999.99"))

        assert PaymentPlan.objects.get(pk=active_plan.pk).status == PaymentPlanStatus.ACTIVE

    def test_waiver_clearing_debt_cancels_active_plan(self, active_plan):
        """Should cancel the active plan when a waiver forgives the rest."""
        debt = DebtService.waive(active_plan.debt_id, Decimal("5000.00"), "Hardship")

        assert debt.status == DebtStatus.SETTLED
        assert PaymentPlan.objects.get(pk=active_plan.pk).status == PaymentPlanStatus.CANCELLED


@pytest.mark.django_db
class TestDebtServiceSettlement:
    """Tests for settlement offer use cases."""

    def test_default_offer_applies_full_payment_discount(self, active_debt, fee_configuration):
        """Should default the offer to the total minus the full payment discount."""
        now = timezone.now()

        debt = DebtService.propose_settlement(active_debt.id, now=now)

        assert debt.settlement_offer_amount == Decimal("4500.00")
        assert debt.settlement_offer_expires_at == now + timedelta(days=14)

    def test_accept_settlement_then_no_payments(
        self, active_debt, signal_receiver, django_capture_on_commit_callbacks
    ):
        """Should settle at 3000.00 and refuse any later payment."""
        receiver = signal_receiver(settlement_accepted)
        DebtService.propose_settlement(
            active_debt.id, Decimal("3000.00"), timezone.now() + timedelta(days=1)
        )

        with django_capture_on_commit_callbacks(execute=True):
            debt = DebtService.accept_settlement(active_debt.id)

        assert debt.status == DebtStatus.SETTLED
        assert receiver.call_args.kwargs["amount"] == Decimal("3000.00")
        with pytest.raises(DebtClosedError):
            DebtService.apply_payment(active_debt.id, Decimal("10.00"))

    def test_accept_settlement_cancels_active_plan(self, active_plan):
        """Should cancel the plan of a debt closed by settlement."""
        DebtService.propose_settlement(
            active_plan.debt_id, Decimal("3000.00"), timezone.now() + timedelta(days=1)
        )

        DebtService.accept_settlement(active_plan.debt_id)

        plan = PaymentPlan.objects.get(pk=active_plan.pk)
        assert plan.status == PaymentPlanStatus.CANCELLED

    def test_reject_settlement(self, active_debt):
        """Should clear the offer."""
        DebtService.propose_settlement(
            active_debt.id, Decimal("3000.00"), timezone.now() + timedelta(days=1)
        )

        debt = DebtService.reject_settlement(active_debt.id, "Debtor declined")

        assert debt.settlement_offer_amount is None
