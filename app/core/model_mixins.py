"""
Reusable model mixins.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key instead of an auto-increment integer
    VersionedMixin: Optimistic-locking version column bumped on every update

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class Debt(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Ledger ids are handed to payment gateways and collection agents,
    so they must be non-guessable and safe to generate before insert.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier (UUID v4)",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Version column for optimistic locking.

    Updates increment ``version`` in SQL (``F("version") + 1``) so two
    writers never compute the same next value, then reload it so the
    instance stays usable. Services compare it with check_version() or
    the ``expected_version`` argument of locked_debt().

    Fields:
        version: Starts at 1, incremented on each update
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
