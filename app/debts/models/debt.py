"""
Debt model: the ledger account for one amount owed by a debtor.

A debt tracks three balance components (principal, interest and fees) and
moves through a lifecycle enforced by django-fsm with a protected status
field. Every status change goes through DEBT_MACHINE, so the transition
table in debts.state_machines is the single source of truth.

Methods mutate the instance in memory; callers persist with save(), which
increments the version for optimistic locking.

Usage:
    from debts.models import Debt

    debt = Debt.open(organization=org, debtor=debtor, principal=Decimal("1500"))
    debt.save()

    debt.assign(collector_id="agent-7")
    application = debt.apply_payment(Decimal("200.00"))
    debt.save()
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django_fsm import RETURN_VALUE, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import HUNDRED, ZERO, Money, percentage_of, round_money
from debts.exceptions import (
    DebtClosedError,
    InvalidAmountError,
    InvalidTransitionError,
    LedgerValidationError,
    NoActiveOfferError,
    SettlementOfferExpiredError,
)
from debts.state_machines import (
    ADMINISTRATIVE_DEBT_EVENTS,
    DEBT_MACHINE,
    DebtEvent,
    DebtStatus,
    InterestCalculationMethod,
    PaymentPlanStatus,
)
from debts.types import PaymentApplication

if TYPE_CHECKING:
    from debts.models.debtor import Debtor
    from debts.models.payment_plan import PaymentPlan
    from organizations.models import Organization, OrganizationFeeConfiguration


# Statuses from which a settlement offer may be proposed.
SETTLEMENT_OFFER_STATUSES = frozenset(
    {DebtStatus.ACTIVE, DebtStatus.IN_ARREARS, DebtStatus.DISPUTED}
)

DAYS_PER_YEAR = Decimal("365")


def _positive_amount(amount, name: str = "amount") -> Decimal:
    value = round_money(amount)
    if value <= ZERO:
        raise InvalidAmountError(
            f"{name.replace('_', ' ').capitalize()} must be positive",
            details={name: str(value)},
        )
    return value


class Debt(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Ledger account for money a debtor owes an organization.

    State Machine:
        pending_assignment -> active (assign)
        active <-> in_arrears (mark_in_arrears / cure_arrears)
        active, in_arrears -> disputed (flag_dispute)
        disputed -> active (resolve_dispute)
        active, in_arrears, disputed -> settled (settlement, payoff)
        active, in_arrears, disputed -> written_off (write_off)

    Settled and written_off are terminal: no balance, schedule, note or
    status change is accepted afterwards.

    Fields:
        organization / debtor: Creditor and debtor
        original_principal: Principal at placement, never changes
        outstanding_principal / accrued_interest / accrued_fees: Balance parts
        settlement_offer_amount / settlement_offer_expires_at: Open offer
        version: Optimistic locking version

    Note:
        The status field is protected; use the transition methods.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="debts",
        help_text="Creditor organization that placed the debt",
    )

    debtor = models.ForeignKey(
        "debts.Debtor",
        on_delete=models.PROTECT,
        related_name="debts",
        help_text="Party the debt is collected from",
    )

    # ==========================================================================
    # References
    # ==========================================================================

    external_account_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Account identifier in the organization's system",
    )

    client_reference_number = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Organization's reference for this placement",
    )

    portfolio_code = models.CharField(max_length=50, blank=True, default="")

    category = models.CharField(max_length=50, blank=True, default="")

    # ==========================================================================
    # Balances
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (uppercase)",
    )

    original_principal = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Principal at placement",
    )

    outstanding_principal = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        help_text="Principal still owed",
    )

    accrued_interest = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
    )

    accrued_fees = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=ZERO,
    )

    settled_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount accepted in settlement",
    )

    # ==========================================================================
    # Interest & Fee Terms
    # ==========================================================================

    interest_rate_annual_percentage = models.DecimalField(
        max_digits=7,
        decimal_places=4,
        null=True,
        blank=True,
    )

    interest_calculation_method = models.CharField(
        max_length=20,
        choices=InterestCalculationMethod.choices,
        default=InterestCalculationMethod.NONE,
    )

    interest_accrued_through = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Interest has been accrued up to this moment",
    )

    late_fee_flat = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Overrides the organization's flat late fee",
    )

    late_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Overrides the organization's late fee percentage",
    )

    grace_days = models.PositiveIntegerField(default=0)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=DebtStatus.PENDING_ASSIGNMENT,
        choices=DebtStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current lifecycle status (managed by FSM)",
    )

    settlement_offer_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )

    settlement_offer_expires_at = models.DateTimeField(null=True, blank=True)

    dispute_reason = models.TextField(blank=True, default="")

    write_off_reason = models.TextField(blank=True, default="")

    assigned_collector_id = models.CharField(max_length=100, blank=True, default="")

    # ==========================================================================
    # Dates
    # ==========================================================================

    opened_at = models.DateTimeField(default=timezone.now)
    due_date = models.DateTimeField(null=True, blank=True)
    last_payment_at = models.DateTimeField(null=True, blank=True)
    next_action_at = models.DateTimeField(null=True, blank=True, db_index=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Annotations
    # ==========================================================================

    notes = models.TextField(blank=True, default="")

    tags = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-opened_at"]
        indexes = [
            models.Index(fields=["organization", "status"], name="debt_org_status_idx"),
            models.Index(fields=["debtor", "status"], name="debt_debtor_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(original_principal__gt=0),
                name="debt_original_principal_positive",
            ),
            models.CheckConstraint(
                condition=Q(outstanding_principal__gte=0),
                name="debt_outstanding_principal_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(accrued_interest__gte=0),
                name="debt_accrued_interest_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(accrued_fees__gte=0),
                name="debt_accrued_fees_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Debt({self.id}, {self.status}, {self.balance})"

    # ==========================================================================
    # Construction
    # ==========================================================================

    @classmethod
    def open(
        cls,
        *,
        organization: Organization,
        debtor: Debtor,
        principal,
        currency: str | None = None,
        external_account_id: str = "",
        client_reference_number: str = "",
        due_date: datetime | None = None,
        opened_at: datetime | None = None,
        **extra,
    ) -> Debt:
        """
        Build a new, unsaved debt in pending_assignment.

        Raises:
            InvalidAmountError: If principal is not positive
            LedgerValidationError: If the debtor belongs to another organization
        """
        principal = _positive_amount(principal, "principal")
        if debtor.organization_id != organization.pk:
            raise LedgerValidationError(
                "Debtor belongs to a different organization",
                details={
                    "debtor_id": str(debtor.pk),
                    "organization_id": str(organization.pk),
                },
            )
        return cls(
            organization=organization,
            debtor=debtor,
            currency=(currency or organization.default_currency).upper(),
            original_principal=principal,
            outstanding_principal=principal,
            external_account_id=external_account_id,
            client_reference_number=client_reference_number,
            due_date=due_date,
            opened_at=opened_at or timezone.now(),
            **extra,
        )

    # ==========================================================================
    # Computed
    # ==========================================================================

    @property
    def total_outstanding(self) -> Decimal:
        return round_money(self.outstanding_principal + self.accrued_interest + self.accrued_fees)

    @property
    def balance(self) -> Money:
        return Money(self.total_outstanding, self.currency)

    @property
    def is_terminal(self) -> bool:
        return DEBT_MACHINE.is_terminal(self.status)

    @property
    def has_active_settlement_offer(self) -> bool:
        return self.settlement_offer_amount is not None

    @property
    def active_plan(self) -> PaymentPlan | None:
        return self.payment_plans.filter(status=PaymentPlanStatus.ACTIVE).first()

    def settlement_offer_is_expired(self, now: datetime | None = None) -> bool:
        if self.settlement_offer_expires_at is None:
            return False
        return self.settlement_offer_expires_at <= (now or timezone.now())

    def late_fee_for(self, amount_overdue, config: OrganizationFeeConfiguration) -> Decimal:
        """Late fee for ``amount_overdue``; debt overrides win over the organization's policy."""
        if self.late_fee_flat is None and self.late_fee_percentage is None:
            return config.late_fee_for(amount_overdue)
        return round_money(
            (self.late_fee_flat or ZERO) + percentage_of(amount_overdue, self.late_fee_percentage or ZERO)
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source="*", target=RETURN_VALUE(*DebtStatus.values))
    def _fire(self, event: str) -> str:
        """Move to the state DEBT_MACHINE assigns to ``event``."""
        return DEBT_MACHINE.next_state(self.status, event)

    def ensure_open(self, action: str) -> None:
        if self.is_terminal:
            raise DebtClosedError(
                f"Cannot {action}: debt is {self.get_status_display().lower()}",
                details={"debt_id": str(self.pk), "status": str(self.status)},
            )

    def _close(self, at: datetime | None) -> None:
        self.closed_at = at or timezone.now()
        self._clear_settlement_offer()

    def _clear_settlement_offer(self) -> None:
        self.settlement_offer_amount = None
        self.settlement_offer_expires_at = None

    def _settle_if_cleared(self, at: datetime | None) -> bool:
        if self.total_outstanding > ZERO:
            return False
        self._fire(DebtEvent.PAY_OFF)
        self._close(at)
        self._append_note("Balance cleared")
        return True

    def assign(self, collector_id: str = "", at: datetime | None = None) -> None:
        """
        Hand the debt to collections.

        Transition: pending_assignment -> active
        """
        self.ensure_open("assign")
        self._fire(DebtEvent.ASSIGN)
        if collector_id:
            self.assigned_collector_id = collector_id
        self._append_note("Assigned to collections" + (f" ({collector_id})" if collector_id else ""))

    def set_status(self, new_status: str, reason: str = "", at: datetime | None = None) -> None:
        """
        Administrative status change naming the target status.

        Only the administrative events in the transition table are used, so
        a debt can never be moved out of a terminal status here.

        Raises:
            InvalidTransitionError: If no administrative event reaches the target
        """
        if new_status not in DebtStatus.values:
            raise InvalidTransitionError(
                f"Unknown debt status '{new_status}'",
                details={"target_state": str(new_status)},
            )
        event = DEBT_MACHINE.event_for(self.status, new_status, ADMINISTRATIVE_DEBT_EVENTS)
        self._fire(event)

        if event == DebtEvent.FLAG_DISPUTE:
            self.dispute_reason = reason
        elif event == DebtEvent.RESOLVE_DISPUTE:
            self.dispute_reason = ""
        elif event == DebtEvent.WRITE_OFF:
            self.write_off_reason = reason

        if self.is_terminal:
            self._close(at)

        label = DebtStatus(new_status).label
        self._append_note(f"Status changed to {label}: {reason}" if reason else f"Status changed to {label}")

    def mark_in_arrears(self, reason: str = "") -> None:
        """Transition: active -> in_arrears"""
        self.ensure_open("mark in arrears")
        self._fire(DebtEvent.MARK_IN_ARREARS)
        self._append_note(f"Marked in arrears: {reason}" if reason else "Marked in arrears")

    def cure_arrears(self) -> None:
        """Transition: in_arrears -> active"""
        self.ensure_open("cure arrears")
        self._fire(DebtEvent.CURE_ARREARS)
        self._append_note("Arrears cured")

    def flag_dispute(self, reason: str) -> None:
        """
        Record that the debtor disputes the debt.

        Transition: active/in_arrears -> disputed
        """
        self.ensure_open("flag a dispute")
        if not reason or not reason.strip():
            raise LedgerValidationError("A dispute requires a reason")
        self._fire(DebtEvent.FLAG_DISPUTE)
        self.dispute_reason = reason.strip()
        self._append_note(f"Dispute flagged: {self.dispute_reason}")

    def resolve_dispute(self, note: str = "") -> None:
        """Transition: disputed -> active"""
        self.ensure_open("resolve a dispute")
        self._fire(DebtEvent.RESOLVE_DISPUTE)
        self.dispute_reason = ""
        self._append_note(f"Dispute resolved: {note}" if note else "Dispute resolved")

    def write_off(self, reason: str, at: datetime | None = None) -> None:
        """
        Stop collecting. Balances are retained for reporting.

        Transition: active/in_arrears/disputed -> written_off
        """
        self.ensure_open("write off")
        if not reason or not reason.strip():
            raise LedgerValidationError("A write-off requires a reason")
        self._fire(DebtEvent.WRITE_OFF)
        self.write_off_reason = reason.strip()
        self._close(at)
        self._append_note(f"Written off: {self.write_off_reason}")

    # ==========================================================================
    # Balance Changes
    # ==========================================================================

    def accrue_interest(self, amount, as_of: datetime | None = None) -> Decimal:
        self.ensure_open("accrue interest")
        amount = _positive_amount(amount)
        self.accrued_interest = round_money(self.accrued_interest + amount)
        self.interest_accrued_through = as_of or timezone.now()
        return amount

    def add_fee(self, amount, reason: str, at: datetime | None = None) -> Decimal:
        self.ensure_open("add a fee")
        amount = _positive_amount(amount)
        self.accrued_fees = round_money(self.accrued_fees + amount)
        self._append_note(f"Fee applied: {reason} ({self.currency} {amount:.2f})")
        return amount

    def apply_payment(self, amount, at: datetime | None = None) -> PaymentApplication:
        """
        Apply a payment to the outstanding principal.

        Any excess over the principal is reported as unapplied and does not
        touch interest or fees. When the total owed reaches zero the debt
        settles in the same call.

        Returns:
            PaymentApplication with the applied and unapplied parts

        Raises:
            DebtClosedError: If the debt is settled or written off
            InvalidAmountError: If amount is not positive
        """
        self.ensure_open("apply a payment")
        amount = _positive_amount(amount)
        at = at or timezone.now()

        applied = min(amount, self.outstanding_principal)
        self.outstanding_principal = round_money(self.outstanding_principal - applied)
        self.last_payment_at = at

        settled = self._settle_if_cleared(at)
        return PaymentApplication(
            applied=round_money(applied),
            unapplied=round_money(amount - applied),
            settled=settled,
        )

    def waive(self, amount, reason: str, at: datetime | None = None) -> bool:
        """
        Forgive part of the amount owed: fees, then interest, then principal.

        Returns:
            True if the waiver cleared the debt and settled it

        Raises:
            InvalidAmountError: If amount is not positive or exceeds the total owed
        """
        self.ensure_open("waive charges")
        amount = _positive_amount(amount)
        if amount > self.total_outstanding:
            raise InvalidAmountError(
                "Waiver exceeds the amount owed",
                details={"amount": str(amount), "total_outstanding": str(self.total_outstanding)},
            )

        remaining = amount
        for attr in ("accrued_fees", "accrued_interest", "outstanding_principal"):
            portion = min(remaining, getattr(self, attr))
            setattr(self, attr, round_money(getattr(self, attr) - portion))
            remaining -= portion

        self._append_note(f"Waived {self.currency} {amount:.2f}: {reason}" if reason else f"Waived {self.currency} {amount:.2f}")
        return self._settle_if_cleared(at)

    def calculate_interest(self, as_of: datetime | None = None) -> Decimal:
        """
        Interest accrued since ``interest_accrued_through`` (or opening).

        Simple: principal × rate × days / 365.
        Compound: daily compounding on principal plus accrued interest.
        """
        rate = self.interest_rate_annual_percentage
        if self.interest_calculation_method == InterestCalculationMethod.NONE or not rate or rate <= ZERO:
            return ZERO

        start = self.interest_accrued_through or self.opened_at
        days = ((as_of or timezone.now()) - start).days
        if days <= 0:
            return ZERO

        rate = Decimal(rate) / HUNDRED
        if self.interest_calculation_method == InterestCalculationMethod.SIMPLE:
            interest = self.outstanding_principal * rate * days / DAYS_PER_YEAR
        else:
            base = self.outstanding_principal + self.accrued_interest
            interest = base * ((1 + rate / DAYS_PER_YEAR) ** days - 1)
        return round_money(interest)

    # ==========================================================================
    # Settlement Offers
    # ==========================================================================

    def propose_settlement(self, amount, expires_at: datetime, now: datetime | None = None) -> None:
        """
        Offer to close the debt for ``amount`` until ``expires_at``.

        Replaces any earlier offer.

        Raises:
            DebtClosedError: If the debt is terminal
            InvalidTransitionError: If the debt is still pending assignment
            InvalidAmountError: If amount is not positive or exceeds the total owed
            LedgerValidationError: If the expiry is not in the future
        """
        self.ensure_open("propose a settlement")
        if self.status not in SETTLEMENT_OFFER_STATUSES:
            raise InvalidTransitionError(
                f"Cannot propose a settlement on a debt in '{self.status}' state",
                details={"entity": "debt", "current_state": str(self.status)},
            )
        amount = _positive_amount(amount)
        if amount > self.total_outstanding:
            raise InvalidAmountError(
                "Settlement offer exceeds the amount owed",
                details={"amount": str(amount), "total_outstanding": str(self.total_outstanding)},
            )
        if expires_at <= (now or timezone.now()):
            raise LedgerValidationError(
                "Settlement offer must expire in the future",
                details={"expires_at": expires_at.isoformat()},
            )

        self.settlement_offer_amount = amount
        self.settlement_offer_expires_at = expires_at
        self._append_note(
            f"Settlement offer proposed: {self.currency} {amount:.2f} until {expires_at.isoformat()}"
        )

    def accept_settlement(self, at: datetime | None = None) -> Decimal:
        """
        Accept the open offer: the debt settles for the offered amount.

        Returns:
            The accepted amount

        Raises:
            NoActiveOfferError: If there is no offer
            SettlementOfferExpiredError: If the offer has expired
        """
        self.ensure_open("accept a settlement")
        at = at or timezone.now()
        if not self.has_active_settlement_offer:
            raise NoActiveOfferError(
                "Debt has no settlement offer",
                details={"debt_id": str(self.pk)},
            )
        if self.settlement_offer_is_expired(at):
            raise SettlementOfferExpiredError(
                "Settlement offer has expired",
                details={
                    "debt_id": str(self.pk),
                    "expired_at": self.settlement_offer_expires_at.isoformat(),
                },
            )

        amount = self.settlement_offer_amount
        self._fire(DebtEvent.ACCEPT_SETTLEMENT)
        self.settled_amount = amount
        self.outstanding_principal = ZERO
        self.accrued_interest = ZERO
        self.accrued_fees = ZERO
        self.last_payment_at = at
        self._close(at)
        self._append_note(f"Settlement accepted: {self.currency} {amount:.2f}")
        return amount

    def reject_settlement(self, reason: str = "") -> None:
        if not self.has_active_settlement_offer:
            raise NoActiveOfferError(
                "Debt has no settlement offer",
                details={"debt_id": str(self.pk)},
            )
        self._clear_settlement_offer()
        self._append_note(f"Settlement offer rejected: {reason}" if reason else "Settlement offer rejected")

    # ==========================================================================
    # Administration
    # ==========================================================================

    def assign_collector(self, collector_id: str) -> None:
        self.ensure_open("reassign")
        self.assigned_collector_id = collector_id

    def schedule_next_action(self, at: datetime | None) -> None:
        self.ensure_open("schedule an action")
        self.next_action_at = at

    def append_note(self, text: str) -> None:
        self.ensure_open("add a note")
        self._append_note(text)

    def _append_note(self, text: str) -> None:
        text = (text or "").strip()
        if not text:
            return
        self.notes = f"{self.notes}\n{text}" if self.notes else text

    def set_due_date(self, due_date: datetime | None) -> None:
        self.ensure_open("change the due date")
        self.due_date = due_date

    def set_interest(self, rate, method: str) -> None:
        self.ensure_open("change interest terms")
        if method not in InterestCalculationMethod.values:
            raise LedgerValidationError(
                f"Unknown interest calculation method '{method}'",
                details={"method": str(method)},
            )
        if rate is not None:
            rate = Decimal(rate)
            if rate < ZERO:
                raise InvalidAmountError(
                    "Interest rate cannot be negative",
                    details={"rate": str(rate)},
                )
        self.interest_rate_annual_percentage = rate
        self.interest_calculation_method = method

    def set_late_fees(self, flat=None, percentage=None) -> None:
        self.ensure_open("change late fees")
        if flat is not None:
            flat = round_money(flat)
            if flat < ZERO:
                raise InvalidAmountError("Late fee cannot be negative", details={"flat": str(flat)})
        if percentage is not None:
            percentage = Decimal(percentage)
            if percentage < ZERO or percentage > HUNDRED:
                raise LedgerValidationError(
                    "Late fee percentage must be between 0 and 100",
                    details={"percentage": str(percentage)},
                )
        self.late_fee_flat = flat
        self.late_fee_percentage = percentage

    def set_grace_days(self, days: int) -> None:
        self.ensure_open("change grace days")
        if days < 0:
            raise LedgerValidationError("Grace days cannot be negative", details={"days": days})
        self.grace_days = days

    def set_category(self, category: str) -> None:
        self.ensure_open("change the category")
        self.category = (category or "").strip()

    def set_tags(self, tags) -> None:
        self.ensure_open("change tags")
        cleaned = []
        for tag in tags or []:
            tag = str(tag).strip()
            if tag and tag not in cleaned:
                cleaned.append(tag)
        self.tags = cleaned
