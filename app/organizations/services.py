"""
Organization services.

FeeConfigurationService is the single place the ledger looks up an
organization's fee policy. Organizations that never customised their
policy get an unsaved instance carrying the defaults.
"""

from __future__ import annotations

from core.exceptions import NotFoundError
from core.services import BaseService
from organizations.models import Organization, OrganizationFeeConfiguration


class FeeConfigurationService(BaseService):
    """Read access to per-organization fee configuration."""

    @classmethod
    def get_for_organization(cls, organization_id) -> OrganizationFeeConfiguration:
        """
        Return the organization's fee configuration.

        Args:
            organization_id: Organization UUID

        Returns:
            Stored configuration, or an unsaved default instance

        Raises:
            NotFoundError: If the organization does not exist
        """
        config = OrganizationFeeConfiguration.objects.filter(
            organization_id=organization_id
        ).first()
        if config is not None:
            return config

        if not Organization.objects.filter(pk=organization_id).exists():
            raise NotFoundError(
                f"Organization {organization_id} not found",
                error_code="ORGANIZATION_NOT_FOUND",
                details={"organization_id": str(organization_id)},
            )

        cls.get_logger().debug(
            "Using default fee configuration",
            extra={"organization_id": str(organization_id)},
        )
        return OrganizationFeeConfiguration(organization_id=organization_id)

    @classmethod
    def get_or_create_for_organization(cls, organization: Organization) -> OrganizationFeeConfiguration:
        """Return the stored configuration, creating one with defaults if missing."""
        config, created = OrganizationFeeConfiguration.objects.get_or_create(
            organization=organization
        )
        if created:
            cls.get_logger().info(
                "Created default fee configuration",
                extra={"organization_id": str(organization.id)},
            )
        return config
