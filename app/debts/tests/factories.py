"""
Factory Boy factories for ledger test data.

Usage:
    from debts.tests.factories import DebtFactory, PaymentPlanFactory

    # Pending debt of AUD 5000.00
    debt = DebtFactory()

    # Plan with a schedule (use the fixtures for plans in other states)
    plan = PaymentPlanFactory(debt=debt)
    plan.schedule_installment(1, due_at, Decimal("500.00"))
"""

from decimal import Decimal

import factory
from django.utils import timezone

from debts.models import Debt, Debtor, PaymentPlan, Transaction
from debts.state_machines import (
    PaymentFrequency,
    PaymentMethod,
    PaymentPlanType,
    TransactionDirection,
)
from organizations.tests.factories import OrganizationFactory


class DebtorFactory(factory.django.DjangoModelFactory):
    """Factory for creating Debtor instances."""

    class Meta:
        model = Debtor
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    reference_id = factory.Sequence(lambda n: f"CUST-{n:05d}")
    first_name = "Jordan"
    last_name = factory.Sequence(lambda n: f"Debtor{n}")
    email = factory.Sequence(lambda n: f"debtor{n}@example.com")


class DebtFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Debt instances.

    Default creates a PENDING_ASSIGNMENT debt of AUD 5000.00 with no interest.

    Example:
        debt = DebtFactory(original_principal=Decimal("1200.00"))
    """

    class Meta:
        model = Debt
        skip_postgeneration_save = True

    organization = factory.SubFactory(OrganizationFactory)
    debtor = factory.SubFactory(
        DebtorFactory,
        organization=factory.SelfAttribute("..organization"),
    )
    currency = "AUD"
    original_principal = Decimal("5000.00")
    outstanding_principal = factory.LazyAttribute(lambda o: o.original_principal)
    external_account_id = factory.Sequence(lambda n: f"ACC-{n:06d}")
    opened_at = factory.LazyFunction(timezone.now)


class PaymentPlanFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating draft PaymentPlan instances with no installments.
    """

    class Meta:
        model = PaymentPlan
        skip_postgeneration_save = True

    debt = factory.SubFactory(DebtFactory)
    reference = factory.Sequence(lambda n: f"PP-TEST-{n:06d}")
    plan_type = PaymentPlanType.SYSTEM_GENERATED
    frequency = PaymentFrequency.WEEKLY
    start_date = factory.LazyFunction(timezone.now)
    original_amount = factory.LazyAttribute(lambda o: o.debt.total_outstanding)


class TransactionFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating PENDING inbound Transaction instances.

    Example:
        txn = TransactionFactory(debt=debt, amount=Decimal("500.00"))
    """

    class Meta:
        model = Transaction
        skip_postgeneration_save = True

    debt = factory.SubFactory(DebtFactory)
    debtor = factory.SelfAttribute("debt.debtor")
    amount = Decimal("100.00")
    currency = factory.SelfAttribute("debt.currency")
    direction = TransactionDirection.INBOUND
    method = PaymentMethod.CARD
    provider = "stripe"
    provider_ref = factory.Sequence(lambda n: f"pi_test_{n:08d}")
    metadata = factory.LazyFunction(dict)
