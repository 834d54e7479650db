"""
Transaction use cases and the payment gateway entry point.

Settling an inbound transaction touches three aggregates: the transaction,
the debt and the plan's installments. TransactionService.settle() applies
all of them in one database transaction under the debt lock, so a payment
is either fully reflected or not at all.

Settlement flow (inbound):
    1. Transaction pending -> succeeded
    2. Debt.apply_payment() (settles the debt when the total reaches zero)
    3. Installments credited in sequence order
    4. Plan completed when every installment is settled
    5. Arrears cured when nothing is overdue any more

Usage:
    from debts.services import PaymentEventProcessor, TransactionService

    txn = TransactionService.record(params)
    outcome = TransactionService.settle(txn.id)

    # From a gateway adapter (at-least-once delivery)
    result = PaymentEventProcessor.process(event)
    if result.success and result.data.duplicate:
        ...
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.money import ZERO
from core.services import BaseService, ServiceResult
from debts.exceptions import (
    CurrencyMismatchError,
    DebtNotFoundError,
    DuplicateProviderRefError,
    LedgerValidationError,
    TransactionNotFoundError,
)
from debts.models import Debt, PaymentInstallment, PaymentPlan, Transaction
from debts.services.debt_service import locked_debt, notify_status_change
from debts.services.plan_service import finish_plan
from debts.signals import payment_applied, payment_failed, send_on_commit
from debts.state_machines import DebtStatus, PaymentPlanStatus, TransactionStatus
from debts.types import InstallmentAllocation, SettlementOutcome

if TYPE_CHECKING:
    from collections.abc import Generator
    from datetime import datetime
    from decimal import Decimal

    from debts.types import PaymentGatewayEvent, RecordTransactionParams


def allocate_to_installments(
    plan: PaymentPlan,
    amount: Decimal,
    at: datetime,
    reference: str = "",
    start: PaymentInstallment | None = None,
) -> list[InstallmentAllocation]:
    """
    Credit ``amount`` across the plan's open installments.

    Starts with ``start`` when it is still open, then continues in sequence
    order. Each installment takes at most its remaining amount; anything
    left over is not allocated.
    """
    open_installments = list(plan.open_installments().select_for_update())
    if start is not None:
        open_installments.sort(key=lambda installment: installment.pk != start.pk)

    allocations = []
    remaining = amount
    for installment in open_installments:
        if remaining <= ZERO:
            break
        portion = min(remaining, installment.remaining)
        if portion <= ZERO:
            continue
        installment.register_payment(portion, at, reference)
        installment.save()
        allocations.append(
            InstallmentAllocation(
                installment_id=installment.pk,
                sequence=installment.sequence,
                amount=portion,
                status=str(installment.status),
            )
        )
        remaining -= portion
    return allocations


@contextmanager
def locked_transaction(transaction_id) -> Generator[tuple[Debt, Transaction], None, None]:
    """Yield ``(debt, transaction)`` with the debt lock held and both rows locked."""
    debt_id = Transaction.objects.filter(pk=transaction_id).values_list("debt_id", flat=True).first()
    if debt_id is None:
        raise TransactionNotFoundError(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": str(transaction_id)},
        )
    with locked_debt(debt_id) as debt:
        txn = Transaction.objects.select_for_update().get(pk=transaction_id)
        yield debt, txn


def has_overdue_installments(debt: Debt, as_of: datetime) -> bool:
    plan = debt.active_plan
    return plan is not None and plan.overdue_installments(as_of).exists()


class TransactionService(BaseService):
    """
    Records transactions and applies their outcome to the ledger.

    All methods raise LedgerError subclasses; PaymentEventProcessor is the
    entry point that converts them into ServiceResult for gateway adapters.
    """

    @classmethod
    def get_transaction(cls, transaction_id) -> Transaction:
        txn = Transaction.objects.filter(pk=transaction_id).first()
        if txn is None:
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} not found",
                details={"transaction_id": str(transaction_id)},
            )
        return txn

    @classmethod
    def find_by_provider_ref(cls, provider: str, provider_ref: str) -> Transaction | None:
        return Transaction.objects.filter(provider=provider, provider_ref=provider_ref).first()

    @classmethod
    def record(cls, params: RecordTransactionParams) -> Transaction:
        """
        Record a pending transaction.

        Raises:
            DebtNotFoundError: If the debt does not exist
            CurrencyMismatchError: If the currency differs from the debt's
            LedgerValidationError: If the plan or installment belongs to another debt
            DuplicateProviderRefError: If (provider, provider_ref) was already recorded
        """
        debt = Debt.objects.filter(pk=params.debt_id).first()
        if debt is None:
            raise DebtNotFoundError(
                f"Debt {params.debt_id} not found",
                details={"debt_id": str(params.debt_id)},
            )
        if params.currency != debt.currency:
            raise CurrencyMismatchError(
                f"Transaction currency {params.currency} does not match debt currency {debt.currency}",
                details={"transaction_currency": params.currency, "debt_currency": debt.currency},
            )

        plan, installment = cls._resolve_plan_links(debt, params)

        if cls.find_by_provider_ref(params.provider, params.provider_ref) is not None:
            raise DuplicateProviderRefError(
                f"Transaction {params.provider}:{params.provider_ref} already recorded",
                details={"provider": params.provider, "provider_ref": params.provider_ref},
            )

        txn = Transaction(
            debt=debt,
            debtor_id=debt.debtor_id,
            payment_plan=plan,
            installment=installment,
            amount=params.amount,
            currency=params.currency,
            direction=params.direction,
            method=params.method,
            provider=params.provider,
            provider_ref=params.provider_ref,
            processed_at=params.processed_at or timezone.now(),
            metadata=dict(params.metadata),
        )
        if params.fee_amount is not None:
            txn.apply_fee(params.fee_amount)

        try:
            with transaction.atomic():
                txn.save()
        except IntegrityError:
            raise DuplicateProviderRefError(
                f"Transaction {params.provider}:{params.provider_ref} already recorded",
                details={"provider": params.provider, "provider_ref": params.provider_ref},
            ) from None

        cls.get_logger().info(
            "Transaction recorded",
            extra={
                "transaction_id": str(txn.id),
                "debt_id": str(debt.id),
                "direction": txn.direction,
                "amount": str(txn.amount),
                "currency": txn.currency,
            },
        )
        return txn

    @classmethod
    def _resolve_plan_links(
        cls,
        debt: Debt,
        params: RecordTransactionParams,
    ) -> tuple[PaymentPlan | None, PaymentInstallment | None]:
        plan = None
        if params.payment_plan_id is not None:
            plan = PaymentPlan.objects.filter(pk=params.payment_plan_id, debt=debt).first()
            if plan is None:
                raise LedgerValidationError(
                    "Payment plan does not belong to the debt",
                    details={"plan_id": str(params.payment_plan_id), "debt_id": str(debt.id)},
                )

        installment = None
        if params.installment_id is not None:
            installment = (
                PaymentInstallment.objects.select_related("plan")
                .filter(pk=params.installment_id, plan__debt=debt)
                .first()
            )
            if installment is None or (plan is not None and installment.plan_id != plan.pk):
                raise LedgerValidationError(
                    "Installment does not belong to the debt's payment plan",
                    details={"installment_id": str(params.installment_id), "debt_id": str(debt.id)},
                )
            plan = plan or installment.plan

        return plan, installment

    @classmethod
    def settle(
        cls,
        transaction_id,
        settled_at: datetime | None = None,
        settled_ref: str | None = None,
    ) -> SettlementOutcome:
        """
        Mark a transaction settled and apply it to the ledger.

        Settling an already succeeded transaction is a no-op reported as a
        duplicate.

        Raises:
            TransactionNotFoundError: If the transaction does not exist
            InvalidTransitionError: If the transaction failed, was refunded or cancelled
            DebtClosedError: If an inbound payment targets a settled or written off debt
        """
        at = settled_at or timezone.now()
        with locked_transaction(transaction_id) as (debt, txn):
            if txn.status == TransactionStatus.SUCCEEDED:
                cls.get_logger().info(
                    "Transaction already settled",
                    extra={"transaction_id": str(txn.id)},
                )
                return SettlementOutcome(transaction=txn, duplicate=True)

            previous_status = debt.status
            txn.mark_settled(at, settled_ref)
            outcome = SettlementOutcome(transaction=txn)

            if txn.is_inbound:
                cls._apply_inbound(debt, txn, at, outcome)
                debt.save()
                notify_status_change(debt, previous_status)
                send_on_commit(
                    payment_applied,
                    sender=Transaction,
                    debt=debt,
                    transaction=txn,
                    application=outcome.payment,
                )
            txn.save()

        cls.get_logger().info(
            "Transaction settled",
            extra={
                "transaction_id": str(txn.id),
                "debt_id": str(debt.id),
                "allocations": len(outcome.allocations),
                "plan_completed": outcome.plan_completed,
                "debt_settled": outcome.debt_settled,
            },
        )
        return outcome

    @classmethod
    def _apply_inbound(cls, debt: Debt, txn: Transaction, at: datetime, outcome: SettlementOutcome) -> None:
        application = debt.apply_payment(txn.amount, at)
        outcome.payment = application
        outcome.debt_settled = application.settled
        if application.unapplied > ZERO:
            txn.record_unapplied(application.unapplied)

        plan_id = txn.payment_plan_id or (
            debt.payment_plans.filter(status=PaymentPlanStatus.ACTIVE).values_list("pk", flat=True).first()
        )
        plan = PaymentPlan.objects.select_for_update().filter(pk=plan_id).first() if plan_id else None
        if plan is not None and plan.status == PaymentPlanStatus.ACTIVE:
            outcome.allocations = allocate_to_installments(
                plan,
                txn.amount,
                at,
                reference=txn.provider_ref,
                start=txn.installment,
            )
            if debt.is_terminal:
                # Nothing is owed; close out the rest of the schedule.
                for installment in plan.open_installments():
                    installment.skip("Debt paid off")
                    installment.save()
            if plan.is_eligible_for_completion:
                outcome.debt_settled = finish_plan(debt, plan, at) or outcome.debt_settled
                outcome.plan_completed = True
            plan.save()

        if debt.status == DebtStatus.IN_ARREARS and not has_overdue_installments(debt, at):
            debt.cure_arrears()
            outcome.arrears_cured = True

    @classmethod
    def fail(cls, transaction_id, reason: str = "") -> Transaction:
        """
        Mark a transaction failed. The ledger balances are untouched.

        The linked installment, if still open, is marked failed too.
        """
        with locked_transaction(transaction_id) as (debt, txn):
            txn.mark_failed(reason)
            txn.save()
            installment = txn.installment
            if installment is not None and not installment.is_closed:
                installment.mark_failed(reason)
                installment.save()
            send_on_commit(payment_failed, sender=Transaction, transaction=txn, reason=reason)

        cls.get_logger().warning(
            "Transaction failed",
            extra={"transaction_id": str(txn.id), "debt_id": str(debt.id), "reason": reason},
        )
        return txn

    @classmethod
    def refund(cls, transaction_id) -> Transaction:
        """
        Mark a succeeded transaction refunded.

        The debt is not re-opened; reversing the payment on the ledger is a
        separate administrative decision.
        """
        with locked_transaction(transaction_id) as (debt, txn):
            txn.mark_refunded()
            txn.save()

        cls.get_logger().warning(
            "Transaction refunded without ledger reversal",
            extra={"transaction_id": str(txn.id), "debt_id": str(debt.id), "amount": str(txn.amount)},
        )
        return txn

    @classmethod
    def cancel(cls, transaction_id, reason: str = "") -> Transaction:
        with locked_transaction(transaction_id) as (_debt, txn):
            txn.cancel(reason)
            txn.save()
        return txn


class PaymentEventProcessor(BaseService):
    """
    Applies gateway payment outcomes to the ledger.

    Gateways deliver at least once. An event whose (provider, provider_ref)
    already succeeded or failed is acknowledged as a duplicate and never
    applied twice.
    """

    @classmethod
    def process(cls, event: PaymentGatewayEvent) -> ServiceResult[SettlementOutcome]:
        """
        Record and settle (or fail) the transaction an event describes.

        Returns:
            ServiceResult with a SettlementOutcome; failures carry the
            ledger error code (e.g. DEBT_CLOSED, CURRENCY_MISMATCH)
        """
        try:
            existing = TransactionService.find_by_provider_ref(event.provider, event.provider_ref)
            if existing is not None and existing.is_final:
                return cls._duplicate(existing)

            try:
                txn = existing or TransactionService.record(event.to_record_params())
            except DuplicateProviderRefError:
                # Recorded concurrently by another delivery of the same event
                return cls._duplicate(TransactionService.find_by_provider_ref(event.provider, event.provider_ref))

            if event.succeeded:
                outcome = TransactionService.settle(txn.id, event.occurred_at, event.settlement_ref or None)
            else:
                outcome = SettlementOutcome(transaction=TransactionService.fail(txn.id, event.failure_reason))
            return ServiceResult.success(outcome)

        except BaseApplicationError as e:
            return cls.handle_exception(
                e,
                context=f"Payment event {event.provider}:{event.provider_ref} rejected",
            )

    @classmethod
    def _duplicate(cls, txn: Transaction) -> ServiceResult[SettlementOutcome]:
        cls.get_logger().info(
            "Duplicate payment event ignored",
            extra={
                "transaction_id": str(txn.id),
                "provider": txn.provider,
                "provider_ref": txn.provider_ref,
                "status": str(txn.status),
            },
        )
        return ServiceResult.success(SettlementOutcome(transaction=txn, duplicate=True))
