"""
Organization and fee configuration models.

Organization is the creditor that owns debts. OrganizationFeeConfiguration
holds the per-organization policy consulted by the ledger when it prices
settlement offers, payment plan options and late fees. The ledger only
reads the configuration; the update_* methods are used by organization
administration.

Usage:
    from organizations.models import Organization, OrganizationFeeConfiguration

    org = Organization.objects.create(name="Acme Lending", abn="51824753556")
    config = OrganizationFeeConfiguration.objects.create(organization=org)

    config.full_payment_discount(Decimal("5000.00"))  # Decimal("500.00")
    config.late_fee_for(Decimal("200.00"))            # Decimal("20.00")
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.exceptions import ValidationError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from core.money import ZERO, percentage_of, round_money, to_decimal

PERCENT_VALIDATORS = [MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))]


class RemittanceFrequency(models.TextChoices):
    """How often collected funds are remitted to the organization."""

    WEEKLY = "weekly", "Weekly"
    FORTNIGHTLY = "fortnightly", "Fortnightly"
    MONTHLY = "monthly", "Monthly"


class Organization(UUIDPrimaryKeyMixin, BaseModel):
    """
    Creditor organization that owns debts and debtors.

    Fields:
        name: Display name
        legal_name: Registered legal name
        abn: Australian Business Number
        default_currency: Currency new debts are opened in
        support_email: Contact shown to debtors
        timezone: IANA timezone name used for due dates
        is_approved / approved_at: Onboarding approval
    """

    name = models.CharField(max_length=200, help_text="Display name")
    legal_name = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Registered legal name",
    )
    abn = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Australian Business Number",
    )
    default_currency = models.CharField(
        max_length=3,
        default=settings.DEBT_DEFAULT_CURRENCY,
        help_text="ISO 4217 currency for new debts",
    )
    support_email = models.EmailField(
        blank=True,
        default="",
        help_text="Support contact shown to debtors",
    )
    timezone = models.CharField(
        max_length=64,
        default="Australia/Sydney",
        help_text="IANA timezone name",
    )
    is_approved = models.BooleanField(
        default=False,
        help_text="Whether onboarding has been approved",
    )
    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When onboarding was approved",
    )

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name

    def approve(self, at=None) -> None:
        """
        Approve the organization.

        Note:
            This method does not save - caller must save after calling.
        """
        self.is_approved = True
        self.approved_at = at or timezone.now()


class OrganizationFeeConfiguration(UUIDPrimaryKeyMixin, BaseModel):
    """
    Fee and discount policy for one organization.

    Percentages are stored as percent values (10.00 means 10%).

    Fields:
        full_payment_discount_percentage: Discount for paying in full
        system_plan_discount_percentage: Discount on system generated plans
        custom_plan_admin_fee_flat / _percentage: Admin fee for custom plans
        processing_fee_percentage: Gateway processing fee passed through
        late_fee_flat / late_fee_percentage: Fee for overdue installments
        remittance_frequency / minimum_payout_threshold /
        enable_automatic_payouts: Remittance schedule
        minimum_installment_amount / default_installment_period_weeks /
        max_installment_count: Smart installment rules
    """

    organization = models.OneToOneField(
        Organization,
        on_delete=models.CASCADE,
        related_name="fee_configuration",
        help_text="Organization this policy belongs to",
    )

    # ==========================================================================
    # Discounts
    # ==========================================================================

    full_payment_discount_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10.00"),
        validators=PERCENT_VALIDATORS,
        help_text="Discount for paying the whole balance at once",
    )
    system_plan_discount_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("5.00"),
        validators=PERCENT_VALIDATORS,
        help_text="Discount for accepting a system generated plan",
    )

    # ==========================================================================
    # Fees
    # ==========================================================================

    custom_plan_admin_fee_flat = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("25.00"),
        help_text="Flat admin fee for custom plans",
    )
    custom_plan_admin_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("2.00"),
        validators=PERCENT_VALIDATORS,
        help_text="Admin fee for custom plans as a percentage of the total",
    )
    processing_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("2.50"),
        validators=PERCENT_VALIDATORS,
        help_text="Payment processing fee percentage",
    )
    late_fee_flat = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("10.00"),
        help_text="Flat late fee per overdue installment",
    )
    late_fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("5.00"),
        validators=PERCENT_VALIDATORS,
        help_text="Late fee as a percentage of the overdue amount",
    )

    # ==========================================================================
    # Remittance
    # ==========================================================================

    remittance_frequency = models.CharField(
        max_length=20,
        choices=RemittanceFrequency.choices,
        default=RemittanceFrequency.WEEKLY,
        help_text="How often collections are remitted",
    )
    minimum_payout_threshold = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("100.00"),
        help_text="Minimum balance before a remittance is paid out",
    )
    enable_automatic_payouts = models.BooleanField(
        default=True,
        help_text="Whether remittances are paid out automatically",
    )

    # ==========================================================================
    # Installment Rules
    # ==========================================================================

    minimum_installment_amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("50.00"),
        help_text="Smallest installment a generated plan may ask for",
    )
    default_installment_period_weeks = models.PositiveIntegerField(
        default=12,
        help_text="Target length of a system generated plan in weeks",
    )
    max_installment_count = models.PositiveIntegerField(
        default=52,
        help_text="Upper bound on installments in any plan",
    )

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(full_payment_discount_percentage__gte=0)
                & Q(full_payment_discount_percentage__lte=100),
                name="fee_config_full_discount_range",
            ),
            models.CheckConstraint(
                condition=Q(minimum_installment_amount__gt=0),
                name="fee_config_min_installment_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Fee configuration for {self.organization_id}"

    # ==========================================================================
    # Computations
    # ==========================================================================

    def full_payment_discount(self, amount) -> Decimal:
        """Discount granted when ``amount`` is paid in one go."""
        return percentage_of(amount, self.full_payment_discount_percentage)

    def system_plan_discount(self, amount) -> Decimal:
        """Discount granted on a system generated plan over ``amount``."""
        return percentage_of(amount, self.system_plan_discount_percentage)

    def processing_fee(self, amount) -> Decimal:
        return percentage_of(amount, self.processing_fee_percentage)

    def late_fee_for(self, amount_overdue) -> Decimal:
        """Flat late fee plus the percentage of the overdue amount."""
        return round_money(
            to_decimal(self.late_fee_flat)
            + percentage_of(amount_overdue, self.late_fee_percentage)
        )

    def custom_plan_admin_fee(self, total) -> Decimal:
        """Total admin fee for a custom plan over ``total``."""
        return round_money(
            to_decimal(self.custom_plan_admin_fee_flat)
            + percentage_of(total, self.custom_plan_admin_fee_percentage)
        )

    # ==========================================================================
    # Updates (organization administration)
    # ==========================================================================

    def update_discounts(self, full_payment, system_plan) -> None:
        """
        Set both discount percentages.

        Raises:
            ValidationError: If either value is outside 0-100

        Note:
            This method does not save - caller must save after calling.
        """
        self._require_percentage(full_payment_discount_percentage=full_payment)
        self._require_percentage(system_plan_discount_percentage=system_plan)
        self.full_payment_discount_percentage = round_money(full_payment)
        self.system_plan_discount_percentage = round_money(system_plan)

    def update_custom_plan_fees(self, flat, percentage) -> None:
        self._require_non_negative(custom_plan_admin_fee_flat=flat)
        self._require_percentage(custom_plan_admin_fee_percentage=percentage)
        self.custom_plan_admin_fee_flat = round_money(flat)
        self.custom_plan_admin_fee_percentage = round_money(percentage)

    def update_processing_fee(self, percentage) -> None:
        self._require_percentage(processing_fee_percentage=percentage)
        self.processing_fee_percentage = round_money(percentage)

    def update_late_fees(self, flat, percentage) -> None:
        self._require_non_negative(late_fee_flat=flat)
        self._require_percentage(late_fee_percentage=percentage)
        self.late_fee_flat = round_money(flat)
        self.late_fee_percentage = round_money(percentage)

    def update_payout_settings(self, frequency, minimum_threshold, automatic: bool) -> None:
        if frequency not in RemittanceFrequency.values:
            raise ValidationError(
                f"Unknown remittance frequency '{frequency}'",
                error_code="INVALID_FEE_CONFIGURATION",
                details={"remittance_frequency": [str(frequency)]},
            )
        self._require_non_negative(minimum_payout_threshold=minimum_threshold)
        self.remittance_frequency = frequency
        self.minimum_payout_threshold = round_money(minimum_threshold)
        self.enable_automatic_payouts = automatic

    def update_installment_rules(self, minimum_amount, period_weeks: int, max_count: int) -> None:
        """
        Set the smart installment rules.

        Raises:
            ValidationError: If the minimum is not positive or either count is below 1
        """
        errors = {}
        if to_decimal(minimum_amount) <= ZERO:
            errors["minimum_installment_amount"] = ["Must be greater than zero"]
        if period_weeks < 1:
            errors["default_installment_period_weeks"] = ["Must be at least 1"]
        if max_count < 1:
            errors["max_installment_count"] = ["Must be at least 1"]
        if errors:
            raise ValidationError(
                "Invalid installment rules",
                error_code="INVALID_FEE_CONFIGURATION",
                details=errors,
            )
        self.minimum_installment_amount = round_money(minimum_amount)
        self.default_installment_period_weeks = period_weeks
        self.max_installment_count = max_count

    @staticmethod
    def _require_percentage(**values) -> None:
        for name, value in values.items():
            value = to_decimal(value)
            if value < 0 or value > 100:
                raise ValidationError(
                    f"{name} must be between 0 and 100",
                    error_code="INVALID_FEE_CONFIGURATION",
                    details={name: [str(value)]},
                )

    @staticmethod
    def _require_non_negative(**values) -> None:
        for name, value in values.items():
            value = to_decimal(value)
            if value < 0:
                raise ValidationError(
                    f"{name} cannot be negative",
                    error_code="INVALID_FEE_CONFIGURATION",
                    details={name: [str(value)]},
                )
