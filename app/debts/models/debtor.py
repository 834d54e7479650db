"""
Debtor model: the party a debt is collected from.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class Debtor(UUIDPrimaryKeyMixin, BaseModel):
    """
    Person or business owing one or more debts to an organization.

    Fields:
        organization: Creditor the debtor was onboarded by
        reference_id: Organization's own identifier for the debtor
        first_name / last_name: Legal name
        email / phone: Contact details
    """

    organization = models.ForeignKey(
        "organizations.Organization",
        on_delete=models.PROTECT,
        related_name="debtors",
        help_text="Organization that onboarded this debtor",
    )
    reference_id = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Organization's identifier for this debtor",
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=32, blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=["organization", "reference_id"], name="debtor_org_reference_idx"),
        ]

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
