"""
Payment plan and installment models.

A PaymentPlan is a repayment agreement for one debt; its schedule is a set
of PaymentInstallment rows ordered by sequence. Both models keep a
protected FSM status driven by the transition tables in
debts.state_machines.

Usage:
    from debts.models import PaymentPlan

    plan = PaymentPlan.create(debt, PaymentPlanType.SYSTEM_GENERATED, PaymentFrequency.WEEKLY, start)
    plan.save()
    plan.schedule_installment(1, start, Decimal("250.00"))
    plan.activate()
    plan.save()
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, models, transaction
from django.db.models import Q
from django.utils import timezone
from django_fsm import RETURN_VALUE, FSMField, transition

from core.helpers import generate_reference
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import ZERO, round_money
from debts.exceptions import (
    AlreadyActiveError,
    AlreadyPaidError,
    DuplicateSequenceError,
    InvalidAmountError,
    InvalidScheduleError,
    InvalidTransitionError,
    LedgerValidationError,
)
from debts.state_machines import (
    INSTALLMENT_MACHINE,
    PAYMENT_PLAN_MACHINE,
    InstallmentEvent,
    InstallmentStatus,
    PaymentFrequency,
    PaymentPlanEvent,
    PaymentPlanStatus,
    PaymentPlanType,
)

if TYPE_CHECKING:
    from debts.models.debt import Debt


OPEN_INSTALLMENT_STATUSES = (
    InstallmentStatus.SCHEDULED,
    InstallmentStatus.PARTIAL,
    InstallmentStatus.FAILED,
)

# Installments in these statuses no longer block plan completion.
SETTLED_INSTALLMENT_STATUSES = (
    InstallmentStatus.PAID,
    InstallmentStatus.SKIPPED,
    InstallmentStatus.WRITTEN_OFF,
)


class PaymentPlan(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Repayment agreement for a debt.

    State Machine:
        draft -> pending_approval (require_manual_review)
        draft/pending_approval -> active (activate)
        active -> completed (complete)
        active -> defaulted (mark_defaulted)
        draft/pending_approval/active -> cancelled (cancel)

    Totals:
        total_payable = sum of installment amounts + down payment.
        Installments are scheduled at their already discounted amounts, so
        this equals installment_amount * installment_count - discount_amount
        when the per-installment amount is priced before the discount. The
        discount is recorded against original_amount and never subtracted
        from total_payable a second time.

    Note:
        At most one plan per debt can be active (partial unique index).
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    debt = models.ForeignKey(
        "debts.Debt",
        on_delete=models.PROTECT,
        related_name="payment_plans",
    )

    reference = models.CharField(
        max_length=64,
        unique=True,
        help_text="Human-readable plan reference (PP-...)",
    )

    # ==========================================================================
    # Terms
    # ==========================================================================

    plan_type = models.CharField(max_length=30, choices=PaymentPlanType.choices)

    frequency = models.CharField(max_length=20, choices=PaymentFrequency.choices)

    status = FSMField(
        default=PaymentPlanStatus.DRAFT,
        choices=PaymentPlanStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current plan status (managed by FSM)",
    )

    start_date = models.DateTimeField()
    end_date = models.DateTimeField(null=True, blank=True)

    original_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
        help_text="Debt balance the plan was built against",
    )

    installment_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    installment_count = models.PositiveIntegerField(default=0)
    total_payable = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    discount_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )

    admin_fee_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
        help_text="Admin fee included in the installment amounts",
    )

    down_payment_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )
    down_payment_due_at = models.DateTimeField(null=True, blank=True)

    grace_period_in_days = models.PositiveIntegerField(default=0)

    # ==========================================================================
    # Review & Lifecycle
    # ==========================================================================

    requires_manual_review = models.BooleanField(default=False)
    created_by = models.CharField(max_length=100, blank=True, default="")
    approved_by = models.CharField(max_length=100, blank=True, default="")

    activated_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    defaulted_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["debt", "status"], name="plan_debt_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["debt"],
                condition=Q(status=PaymentPlanStatus.ACTIVE),
                name="unique_active_plan_per_debt",
            ),
            models.CheckConstraint(
                condition=Q(total_payable__gte=0),
                name="payment_plan_total_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(discount_amount__isnull=True) | Q(discount_amount__gte=0),
                name="payment_plan_discount_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentPlan({self.reference}, {self.status})"

    @classmethod
    def create(
        cls,
        debt: Debt,
        plan_type: str,
        frequency: str,
        start_date: datetime,
        *,
        created_by: str = "",
        grace_period_in_days: int = 0,
        original_amount: Decimal | None = None,
    ) -> PaymentPlan:
        """Build an unsaved draft plan for ``debt``."""
        if plan_type not in PaymentPlanType.values:
            raise LedgerValidationError(f"Unknown plan type '{plan_type}'")
        if frequency not in PaymentFrequency.values:
            raise LedgerValidationError(f"Unknown payment frequency '{frequency}'")
        if grace_period_in_days < 0:
            raise LedgerValidationError("Grace period cannot be negative")
        prefix = "PP-CUSTOM" if plan_type == PaymentPlanType.CUSTOM else "PP"
        return cls(
            debt=debt,
            reference=generate_reference(prefix),
            plan_type=plan_type,
            frequency=frequency,
            start_date=start_date,
            created_by=created_by,
            grace_period_in_days=grace_period_in_days,
            original_amount=round_money(
                debt.total_outstanding if original_amount is None else original_amount
            ),
        )

    # ==========================================================================
    # Computed
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return PAYMENT_PLAN_MACHINE.is_terminal(self.status)

    @property
    def amount_paid(self) -> Decimal:
        total = self.installments.aggregate(total=models.Sum("amount_paid"))["total"]
        return round_money(total or ZERO)

    @property
    def is_eligible_for_completion(self) -> bool:
        if self.status != PaymentPlanStatus.ACTIVE:
            return False
        return not self._unsettled_sequences()

    def open_installments(self):
        return self.installments.filter(status__in=OPEN_INSTALLMENT_STATUSES).order_by("sequence")

    def overdue_installments(self, as_of: datetime | None = None):
        cutoff = (as_of or timezone.now()) - timedelta(days=self.grace_period_in_days)
        return self.open_installments().filter(due_at__lt=cutoff)

    def _unsettled_sequences(self) -> list[int]:
        return list(
            self.installments.exclude(status__in=SETTLED_INSTALLMENT_STATUSES)
            .order_by("sequence")
            .values_list("sequence", flat=True)
        )

    # ==========================================================================
    # Schedule
    # ==========================================================================

    def _ensure_schedulable(self) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Cannot change the schedule of a {self.status} payment plan",
                details={"entity": "payment plan", "current_state": str(self.status)},
            )

    def schedule_installment(self, sequence: int, due_at: datetime, amount_due) -> PaymentInstallment:
        """
        Add an installment and recalculate the plan totals.

        Raises:
            InvalidScheduleError: If sequence < 1
            InvalidAmountError: If amount_due is not positive
            DuplicateSequenceError: If the sequence already exists
            InvalidTransitionError: If the plan is terminal
        """
        self._ensure_schedulable()
        if self._state.adding:
            raise LedgerValidationError("Save the payment plan before scheduling installments")
        if sequence < 1:
            raise InvalidScheduleError(
                "Installment sequence starts at 1",
                details={"sequence": sequence},
            )
        amount_due = round_money(amount_due)
        if amount_due <= ZERO:
            raise InvalidAmountError(
                "Installment amount must be positive",
                details={"amount_due": str(amount_due)},
            )
        if self.installments.filter(sequence=sequence).exists():
            raise DuplicateSequenceError(
                f"Installment {sequence} already exists",
                details={"plan_id": str(self.pk), "sequence": sequence},
            )

        try:
            with transaction.atomic():
                installment = PaymentInstallment.objects.create(
                    plan=self,
                    sequence=sequence,
                    due_at=due_at,
                    amount_due=amount_due,
                )
        except IntegrityError:
            raise DuplicateSequenceError(
                f"Installment {sequence} already exists",
                details={"plan_id": str(self.pk), "sequence": sequence},
            ) from None

        self.recalculate_totals()
        return installment

    def remove_installment(self, sequence: int) -> None:
        self._ensure_schedulable()
        installment = self.installments.filter(sequence=sequence).first()
        if installment is None:
            raise InvalidScheduleError(
                f"Installment {sequence} does not exist",
                details={"plan_id": str(self.pk), "sequence": sequence},
            )
        if installment.amount_paid > ZERO or installment.is_closed:
            raise InvalidTransitionError(
                f"Installment {sequence} has already been paid or closed",
                details={"sequence": sequence, "current_state": str(installment.status)},
            )
        installment.delete()
        self.recalculate_totals()

    def recalculate_totals(self) -> None:
        rows = list(
            self.installments.exclude(status=InstallmentStatus.CANCELLED).values_list("amount_due", "due_at")
        )
        amounts = [amount for amount, _due_at in rows]
        due_dates = [due_at for _amount, due_at in rows]
        count = len(amounts)
        scheduled = sum(amounts, ZERO)

        self.installment_count = count
        self.installment_amount = round_money(scheduled / count) if count else ZERO
        self.end_date = max(due_dates) if due_dates else None
        self.total_payable = round_money(scheduled + (self.down_payment_amount or ZERO))

    def apply_discount(self, amount) -> None:
        """
        Record a discount against the original amount.

        Raises:
            LedgerValidationError: For custom plans
            InvalidAmountError: If amount is not positive or exceeds the original amount
        """
        self._ensure_schedulable()
        if self.plan_type == PaymentPlanType.CUSTOM:
            raise LedgerValidationError(
                "Custom plans cannot carry a discount",
                details={"plan_id": str(self.pk)},
            )
        amount = round_money(amount)
        if amount <= ZERO or amount > self.original_amount:
            raise InvalidAmountError(
                "Discount must be positive and no more than the original amount",
                details={"amount": str(amount), "original_amount": str(self.original_amount)},
            )
        self.discount_amount = amount

    def set_down_payment(self, amount, due_at: datetime | None = None) -> None:
        self._ensure_schedulable()
        amount = round_money(amount) if amount is not None else None
        if amount is not None and amount < ZERO:
            raise InvalidAmountError(
                "Down payment cannot be negative",
                details={"amount": str(amount)},
            )
        if not amount:
            self.down_payment_amount = None
            self.down_payment_due_at = None
        else:
            self.down_payment_amount = amount
            self.down_payment_due_at = due_at or self.start_date
        self.recalculate_totals()

    def update_schedule(self, frequency: str, start_date: datetime) -> None:
        self._ensure_schedulable()
        if frequency not in PaymentFrequency.values:
            raise LedgerValidationError(f"Unknown payment frequency '{frequency}'")
        self.frequency = frequency
        self.start_date = start_date

    def set_grace_period(self, days: int) -> None:
        self._ensure_schedulable()
        if days < 0:
            raise LedgerValidationError("Grace period cannot be negative", details={"days": days})
        self.grace_period_in_days = days

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source="*", target=RETURN_VALUE(*PaymentPlanStatus.values))
    def _fire(self, event: str) -> str:
        return PAYMENT_PLAN_MACHINE.next_state(self.status, event)

    def require_manual_review(self) -> None:
        """
        Flag the plan for approval before activation.

        Transition: draft -> pending_approval
        """
        if self.status == PaymentPlanStatus.PENDING_APPROVAL:
            self.requires_manual_review = True
            return
        self._fire(PaymentPlanEvent.SUBMIT_FOR_REVIEW)
        self.requires_manual_review = True

    def activate(self, by_user_id: str = "", at: datetime | None = None) -> None:
        """
        Start collecting against the schedule.

        Transition: draft/pending_approval -> active

        Raises:
            AlreadyActiveError: If the plan is already active
            InvalidScheduleError: If no installments are scheduled
            LedgerValidationError: If a review-flagged plan has no approver
        """
        if self.status == PaymentPlanStatus.ACTIVE:
            raise AlreadyActiveError(
                "Payment plan is already active",
                details={"plan_id": str(self.pk)},
            )
        PAYMENT_PLAN_MACHINE.next_state(self.status, PaymentPlanEvent.ACTIVATE)
        if not self.installments.exists():
            raise InvalidScheduleError(
                "Cannot activate a payment plan with no installments",
                details={"plan_id": str(self.pk)},
            )
        if self.requires_manual_review and not by_user_id:
            raise LedgerValidationError(
                "Payment plan requires approval by a reviewer",
                details={"plan_id": str(self.pk)},
            )

        self._fire(PaymentPlanEvent.ACTIVATE)
        self.approved_by = by_user_id
        self.activated_at = at or timezone.now()

    def complete(self, at: datetime | None = None) -> None:
        """
        Transition: active -> completed

        Raises:
            InvalidTransitionError: If the plan is not active or has open installments
        """
        PAYMENT_PLAN_MACHINE.next_state(self.status, PaymentPlanEvent.COMPLETE)
        open_sequences = self._unsettled_sequences()
        if open_sequences:
            raise InvalidTransitionError(
                "Cannot complete a payment plan with open installments",
                details={"plan_id": str(self.pk), "open_sequences": open_sequences},
            )
        self._fire(PaymentPlanEvent.COMPLETE)
        self.completed_at = at or timezone.now()

    def mark_defaulted(self, at: datetime | None = None, reason: str = "") -> None:
        """Transition: active -> defaulted"""
        self._fire(PaymentPlanEvent.DEFAULT)
        self.defaulted_at = at or timezone.now()
        if reason:
            self.notes = f"{self.notes}\nDefaulted: {reason}".strip()

    def cancel(self, reason: str = "", at: datetime | None = None) -> list[PaymentInstallment]:
        """
        Cancel the plan and every open installment.

        Transition: draft/pending_approval/active -> cancelled

        Open installments are cancelled and saved; the plan itself is left
        for the caller to save.

        Returns:
            The installments that were cancelled
        """
        self._fire(PaymentPlanEvent.CANCEL)
        self.cancelled_at = at or timezone.now()
        self.cancellation_reason = reason

        cancelled = []
        for installment in self.open_installments():
            installment.cancel(reason)
            installment.save()
            cancelled.append(installment)
        return cancelled


class PaymentInstallment(UUIDPrimaryKeyMixin, BaseModel):
    """
    One scheduled payment within a plan.

    State Machine:
        scheduled/partial/failed -> partial (register_payment below amount due)
        scheduled/partial/failed -> paid (register_payment reaching amount due)
        scheduled/partial/failed -> failed (mark_failed)
        scheduled/partial/failed -> skipped / written_off / cancelled
    """

    plan = models.ForeignKey(
        PaymentPlan,
        on_delete=models.CASCADE,
        related_name="installments",
    )

    sequence = models.PositiveIntegerField()
    due_at = models.DateTimeField(db_index=True)

    amount_due = models.DecimalField(max_digits=14, decimal_places=2)
    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    late_fee_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    status = FSMField(
        default=InstallmentStatus.SCHEDULED,
        choices=InstallmentStatus.choices,
        db_index=True,
        protected=True,
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    late_fee_applied_at = models.DateTimeField(null=True, blank=True)
    failed_attempts = models.PositiveIntegerField(default=0)
    last_failure_reason = models.TextField(blank=True, default="")
    transaction_reference = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["plan", "sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["plan", "sequence"],
                name="unique_installment_sequence_per_plan",
            ),
            models.CheckConstraint(
                condition=Q(sequence__gte=1),
                name="installment_sequence_positive",
            ),
            models.CheckConstraint(
                condition=Q(amount_due__gt=0),
                name="installment_amount_due_positive",
            ),
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0),
                name="installment_amount_paid_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Installment({self.plan_id}, #{self.sequence}, {self.status})"

    @property
    def remaining(self) -> Decimal:
        """Amount still payable on this installment, late fee included."""
        return max(ZERO, round_money(self.amount_due + self.late_fee_amount - self.amount_paid))

    @property
    def is_closed(self) -> bool:
        return INSTALLMENT_MACHINE.is_terminal(self.status)

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_INSTALLMENT_STATUSES

    def is_overdue(self, as_of: datetime | None = None, grace_days: int = 0) -> bool:
        if self.is_closed:
            return False
        return self.due_at + timedelta(days=grace_days) < (as_of or timezone.now())

    @transition(field=status, source="*", target=RETURN_VALUE(*InstallmentStatus.values))
    def _fire(self, event: str) -> str:
        return INSTALLMENT_MACHINE.next_state(self.status, event)

    def _ensure_not_paid(self) -> None:
        if self.status == InstallmentStatus.PAID:
            raise AlreadyPaidError(
                f"Installment {self.sequence} is already paid",
                details={"installment_id": str(self.pk), "sequence": self.sequence},
            )

    def _append_note(self, text: str) -> None:
        if text:
            self.notes = f"{self.notes}\n{text}" if self.notes else text

    def register_payment(
        self,
        amount,
        at: datetime | None = None,
        transaction_reference: str | None = None,
    ) -> Decimal:
        """
        Credit a payment to this installment.

        Up to the amount due plus any late fee is accepted. The installment
        becomes paid once amount_paid reaches amount_due, otherwise partial.

        Returns:
            The credited amount

        Raises:
            AlreadyPaidError: If the installment is paid
            InvalidTransitionError: If it is skipped, written off or cancelled
            InvalidAmountError: If amount is not positive or exceeds the remaining amount
        """
        self._ensure_not_paid()
        INSTALLMENT_MACHINE.next_state(self.status, InstallmentEvent.PAY_IN_FULL)
        amount = round_money(amount)
        if amount <= ZERO or amount > self.remaining:
            raise InvalidAmountError(
                "Payment must be positive and no more than the remaining amount",
                details={"amount": str(amount), "remaining": str(self.remaining)},
            )

        self.amount_paid = round_money(self.amount_paid + amount)
        if self.amount_paid >= self.amount_due:
            self._fire(InstallmentEvent.PAY_IN_FULL)
            self.paid_at = at or timezone.now()
        else:
            self._fire(InstallmentEvent.PAY_PARTIALLY)
        if transaction_reference:
            self.transaction_reference = transaction_reference
        return amount

    def mark_failed(self, reason: str = "") -> None:
        """Transition: scheduled/partial/failed -> failed"""
        self._ensure_not_paid()
        self._fire(InstallmentEvent.FAIL)
        self.failed_attempts += 1
        self.last_failure_reason = reason

    def apply_late_fee(self, amount, at: datetime | None = None) -> Decimal:
        if self.is_closed:
            raise InvalidTransitionError(
                f"Cannot apply a late fee to a {self.status} installment",
                details={"entity": "installment", "current_state": str(self.status)},
            )
        amount = round_money(amount)
        if amount <= ZERO:
            raise InvalidAmountError("Late fee must be positive", details={"amount": str(amount)})
        self.late_fee_amount = round_money(self.late_fee_amount + amount)
        self.late_fee_applied_at = at or timezone.now()
        return amount

    def reschedule(self, due_at: datetime) -> None:
        if self.is_closed:
            raise InvalidTransitionError(
                f"Cannot reschedule a {self.status} installment",
                details={"entity": "installment", "current_state": str(self.status)},
            )
        self.due_at = due_at

    def skip(self, reason: str = "") -> None:
        self._ensure_not_paid()
        self._fire(InstallmentEvent.SKIP)
        self._append_note(f"Skipped: {reason}" if reason else "Skipped")

    def write_off(self, reason: str = "") -> None:
        self._ensure_not_paid()
        self._fire(InstallmentEvent.WRITE_OFF)
        self._append_note(f"Written off: {reason}" if reason else "Written off")

    def cancel(self, reason: str = "") -> None:
        self._ensure_not_paid()
        self._fire(InstallmentEvent.CANCEL)
        self._append_note(f"Cancelled: {reason}" if reason else "Cancelled")
