"""
Transaction model: one money movement for a debt.

Inbound transactions come from the debtor; outbound ones are remittances
to the organization. Each is identified by ``(provider, provider_ref)``,
which is unique so gateway retries cannot create duplicates.

The model only changes its own status. Applying a settled inbound
transaction to the debt and its installments is TransactionService's job.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal

from django.db import models
from django.db.models import Q
from django.utils import timezone
from django_fsm import RETURN_VALUE, FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from core.money import ZERO, Money, round_money
from debts.exceptions import InvalidAmountError, LedgerValidationError
from debts.state_machines import (
    TRANSACTION_MACHINE,
    PaymentMethod,
    TransactionDirection,
    TransactionEvent,
    TransactionStatus,
)


class Transaction(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Money movement reported by a payment provider.

    State Machine:
        pending -> succeeded (mark_settled)
        pending -> failed (mark_failed)
        pending -> cancelled (cancel)
        succeeded -> refunded (mark_refunded)

    Fields:
        provider / provider_ref: Gateway identity, unique together
        settlement_ref: Reference reported when the movement settled
        unapplied_amount: Part of an inbound payment beyond the principal
        fee_amount / fee_currency: Processing fee charged by the provider
    """

    debt = models.ForeignKey(
        "debts.Debt",
        on_delete=models.PROTECT,
        related_name="transactions",
    )

    debtor = models.ForeignKey(
        "debts.Debtor",
        on_delete=models.PROTECT,
        related_name="transactions",
    )

    payment_plan = models.ForeignKey(
        "debts.PaymentPlan",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )

    installment = models.ForeignKey(
        "debts.PaymentInstallment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transactions",
    )

    # ==========================================================================
    # Amount & Routing
    # ==========================================================================

    amount = models.DecimalField(max_digits=14, decimal_places=2)
    currency = models.CharField(max_length=3)

    direction = models.CharField(
        max_length=10,
        choices=TransactionDirection.choices,
        default=TransactionDirection.INBOUND,
    )

    method = models.CharField(
        max_length=30,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CARD,
    )

    provider = models.CharField(max_length=50)
    provider_ref = models.CharField(max_length=255)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        protected=True,
    )

    processed_at = models.DateTimeField(default=timezone.now)
    settled_at = models.DateTimeField(null=True, blank=True)
    settlement_ref = models.CharField(max_length=255, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")

    fee_amount = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)
    fee_currency = models.CharField(max_length=3, blank=True, default="")

    unapplied_amount = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    class Meta:
        ordering = ["-processed_at"]
        indexes = [
            models.Index(fields=["debt", "status"], name="txn_debt_status_idx"),
            models.Index(fields=["status", "processed_at"], name="txn_status_processed_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_ref"],
                name="unique_transaction_provider_ref",
            ),
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="transaction_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Transaction({self.provider}:{self.provider_ref}, {self.status}, {self.money})"

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)

    @property
    def is_inbound(self) -> bool:
        return self.direction == TransactionDirection.INBOUND

    @property
    def is_final(self) -> bool:
        """Settled, failed, refunded or cancelled."""
        return self.status != TransactionStatus.PENDING

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source="*", target=RETURN_VALUE(*TransactionStatus.values))
    def _fire(self, event: str) -> str:
        return TRANSACTION_MACHINE.next_state(self.status, event)

    def mark_settled(self, at: datetime | None = None, settled_ref: str | None = None) -> None:
        """
        Transition: pending -> succeeded

        The provider reference is kept; a settlement reference is stored
        alongside it.
        """
        self._fire(TransactionEvent.SETTLE)
        self.settled_at = at or timezone.now()
        if settled_ref:
            self.settlement_ref = settled_ref

    def mark_failed(self, reason: str = "") -> None:
        """Transition: pending -> failed"""
        self._fire(TransactionEvent.FAIL)
        self.failure_reason = reason

    def mark_refunded(self) -> None:
        """Transition: succeeded -> refunded"""
        self._fire(TransactionEvent.REFUND)

    def cancel(self, reason: str = "") -> None:
        """Transition: pending -> cancelled"""
        self._fire(TransactionEvent.CANCEL)
        self.failure_reason = reason

    def apply_fee(self, amount, currency: str | None = None) -> None:
        amount = round_money(amount)
        if amount < ZERO:
            raise InvalidAmountError(
                "Processing fee cannot be negative",
                details={"amount": str(amount)},
            )
        self.fee_amount = amount
        self.fee_currency = (currency or self.currency).upper()

    def attach_metadata(self, value) -> None:
        """
        Merge annotations into ``metadata``.

        Accepts a dict or a JSON object string.
        """
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                raise LedgerValidationError(
                    "Metadata is not valid JSON",
                    details={"error": str(e)},
                ) from e
        if not isinstance(value, dict):
            raise LedgerValidationError(
                "Metadata must be a JSON object",
                details={"type": type(value).__name__},
            )
        self.metadata = {**(self.metadata or {}), **value}

    def record_unapplied(self, amount: Decimal) -> None:
        self.unapplied_amount = round_money(amount)
