"""
Pytest fixtures for ledger tests.

Debt and plan fixtures are moved into their state through the real
transition methods, so a fixture can never be in a state the transition
tables do not allow.

Usage:
    def test_payment_reduces_principal(active_debt):
        active_debt.apply_payment(Decimal("500.00"))
        active_debt.save()
        assert active_debt.outstanding_principal == Decimal("4500.00")
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone

from debts.tests.factories import (
    DebtFactory,
    DebtorFactory,
    PaymentPlanFactory,
    TransactionFactory,
)
from organizations.tests.factories import (
    OrganizationFactory,
    OrganizationFeeConfigurationFactory,
)


# =============================================================================
# Locking
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis_lock():
    """
    Replace the Redis connection behind debt locks.

    Every acquire succeeds and every release reports ownership, so service
    tests run without a Redis server.
    """
    with patch("debts.locks.get_redis_connection") as mock_get_conn:
        redis_instance = MagicMock()
        redis_instance.set.return_value = True
        redis_instance.eval.return_value = 1
        mock_get_conn.return_value = redis_instance
        yield redis_instance


# =============================================================================
# Organization & Debtor Fixtures
# =============================================================================


@pytest.fixture
def organization(db):
    """Create a creditor organization."""
    return OrganizationFactory()


@pytest.fixture
def fee_configuration(db, organization):
    """Create the organization's fee configuration with default values."""
    return OrganizationFeeConfigurationFactory(organization=organization)


@pytest.fixture
def debtor(db, organization):
    """Create a debtor of the organization."""
    return DebtorFactory(organization=organization)


# =============================================================================
# Debt State Fixtures
# =============================================================================


@pytest.fixture
def pending_debt(db, organization, debtor):
    """Create a debt of AUD 5000.00 awaiting assignment."""
    return DebtFactory(organization=organization, debtor=debtor)


@pytest.fixture
def active_debt(pending_debt):
    """Create an active debt of AUD 5000.00."""
    pending_debt.assign(collector_id="agent-1")
    pending_debt.save()
    return pending_debt


@pytest.fixture
def in_arrears_debt(active_debt):
    """Create a debt in arrears."""
    active_debt.mark_in_arrears("Missed payment")
    active_debt.save()
    return active_debt


@pytest.fixture
def disputed_debt(active_debt):
    """Create a disputed debt."""
    active_debt.flag_dispute("Debtor disputes the amount")
    active_debt.save()
    return active_debt


@pytest.fixture
def settled_debt(active_debt):
    """Create a debt settled by paying the full balance."""
    active_debt.apply_payment(active_debt.total_outstanding)
    active_debt.save()
    return active_debt


@pytest.fixture
def written_off_debt(active_debt):
    """Create a written off debt."""
    active_debt.write_off("Debtor deceased")
    active_debt.save()
    return active_debt


# =============================================================================
# Payment Plan Fixtures
# =============================================================================


@pytest.fixture
def plan_start():
    """First due date of the scheduled plans."""
    return timezone.now() + timedelta(days=7)


@pytest.fixture
def draft_plan(db, active_debt, plan_start):
    """
    Create a draft plan of 10 weekly installments of AUD 500.00.
    """
    plan = PaymentPlanFactory(debt=active_debt, start_date=plan_start)
    for sequence in range(1, 11):
        plan.schedule_installment(
            sequence,
            plan_start + timedelta(weeks=sequence - 1),
            Decimal("500.00"),
        )
    plan.save()
    return plan


@pytest.fixture
def active_plan(draft_plan):
    """Create an active plan of 10 weekly installments of AUD 500.00."""
    draft_plan.activate(by_user_id="agent-1")
    draft_plan.save()
    return draft_plan


# =============================================================================
# Transaction Fixtures
# =============================================================================


@pytest.fixture
def pending_transaction(db, active_debt):
    """Create a pending inbound transaction of AUD 500.00."""
    return TransactionFactory(debt=active_debt, amount=Decimal("500.00"))


@pytest.fixture
def succeeded_transaction(pending_transaction):
    """Create a settled inbound transaction (status only, ledger untouched)."""
    pending_transaction.mark_settled(settled_ref="st_001")
    pending_transaction.save()
    return pending_transaction
