"""
Tests for scheduled collection tasks.

Tasks are called directly; fan-out is checked by patching .delay.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from freezegun import freeze_time

from debts.models import Debt
from debts.state_machines import DebtStatus, InterestCalculationMethod, TransactionStatus
from debts.tasks import (
    accrue_daily_interest,
    accrue_interest_for_debt,
    expire_settlement_offers,
    flag_failed_payments_for_retry,
    process_debt_arrears,
    scan_overdue_installments,
)
from debts.tests.factories import TransactionFactory


@pytest.mark.django_db
class TestArrearsTasks:
    """Tests for scan_overdue_installments and process_debt_arrears."""

    def test_scan_queues_overdue_debts(self, active_plan, plan_start, mocker):
        """Should queue one task per debt with an overdue installment."""
        mock_process = mocker.patch("debts.tasks.process_debt_arrears.delay")

        with freeze_time(plan_start + timedelta(days=1)):
            result = scan_overdue_installments()

        assert result == {"queued_count": 1}
        mock_process.assert_called_once_with(str(active_plan.debt_id))

    def test_scan_keeps_going_when_queueing_fails(self, active_plan, plan_start, mocker):
        """Should log and skip a debt that cannot be queued."""
        mocker.patch("debts.tasks.process_debt_arrears.delay", side_effect=ConnectionError("broker down"))

        with freeze_time(plan_start + timedelta(days=1)):
            result = scan_overdue_installments()

        assert result == {"queued_count": 0}

    def test_scan_skips_while_another_run_holds_lock(self, active_plan, plan_start, mock_redis_lock, mocker):
        """Should queue nothing when the overdue scan lock is already held."""
        mock_redis_lock.reset_mock()
        mock_redis_lock.set.return_value = False
        mock_process = mocker.patch("debts.tasks.process_debt_arrears.delay")

        with freeze_time(plan_start + timedelta(days=1)):
            result = scan_overdue_installments()

        assert result == {"queued_count": 0, "skipped": True}
        mock_process.assert_not_called()
        mock_redis_lock.eval.assert_not_called()

    def test_scan_releases_lock(self, active_plan, plan_start, mock_redis_lock, mocker):
        """Should release the scan lock after queueing."""
        mocker.patch("debts.tasks.process_debt_arrears.delay")

        with freeze_time(plan_start + timedelta(days=1)):
            scan_overdue_installments()

        assert mock_redis_lock.set.call_args[0][0] == "lock:scan:overdue-installments"
        assert mock_redis_lock.eval.call_args[0][2] == "lock:scan:overdue-installments"

    def test_process_debt_arrears(self, active_plan, plan_start):
        """Should apply arrears rules and describe the outcome."""
        with freeze_time(plan_start + timedelta(days=3)):
            result = process_debt_arrears(str(active_plan.debt_id))

        assert result["status"] == "processed"
        assert result["late_fees_applied"] == 1
        assert result["late_fee_total"] == "35.00"
        assert result["marked_in_arrears"] is True
        assert Debt.objects.get(pk=active_plan.debt_id).status == DebtStatus.IN_ARREARS


@pytest.mark.django_db
class TestOfferTasks:
    """Tests for expire_settlement_offers."""

    def test_expire_offers(self, active_debt):
        """Should report how many offers expired."""
        now = timezone.now()
        active_debt.propose_settlement(Decimal("3000.00"), now + timedelta(days=1), now)
        active_debt.save()

        with freeze_time(now + timedelta(days=2)):
            result = expire_settlement_offers()

        assert result == {"expired_count": 1}


@pytest.mark.django_db
class TestInterestTasks:
    """Tests for accrue_daily_interest and accrue_interest_for_debt."""

    @pytest.fixture
    def interest_debt(self, active_debt):
        active_debt.set_interest(Decimal("7.30"), InterestCalculationMethod.SIMPLE)
        active_debt.interest_accrued_through = timezone.now()
        active_debt.save()
        return active_debt

    def test_daily_interest_fans_out(self, interest_debt, mocker):
        """Should queue accrual for each interest-bearing debt."""
        mock_accrue = mocker.patch("debts.tasks.accrue_interest_for_debt.delay")

        result = accrue_daily_interest()

        assert result == {"queued_count": 1}
        mock_accrue.assert_called_once_with(str(interest_debt.id))

    def test_daily_interest_skips_while_another_run_holds_lock(self, interest_debt, mock_redis_lock, mocker):
        """Should queue nothing when the interest scan lock is already held."""
        mock_redis_lock.set.return_value = False
        mock_accrue = mocker.patch("debts.tasks.accrue_interest_for_debt.delay")

        result = accrue_daily_interest()

        assert result == {"queued_count": 0, "skipped": True}
        mock_accrue.assert_not_called()

    def test_accrue_interest_for_debt(self, interest_debt):
        """Should accrue interest up to the run time."""
        with freeze_time(interest_debt.interest_accrued_through + timedelta(days=10)):
            result = accrue_interest_for_debt(str(interest_debt.id))

        assert result == {"status": "accrued", "debt_id": str(interest_debt.id), "amount": "10.00"}


@pytest.mark.django_db
class TestFailedPaymentTasks:
    """Tests for flag_failed_payments_for_retry."""

    def test_flags_failed_payments(self, active_debt):
        """Should report how many failures were flagged."""
        txn = TransactionFactory(debt=active_debt)
        txn.mark_failed("card_declined")
        txn.save()

        result = flag_failed_payments_for_retry()

        assert result == {"flagged_count": 1}
        txn.refresh_from_db(fields=["metadata"])
        assert txn.status == TransactionStatus.FAILED
        assert "retry_flagged_at" in txn.metadata
