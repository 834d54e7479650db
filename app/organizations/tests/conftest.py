"""
Pytest fixtures for organization tests.
"""

import pytest

from organizations.tests.factories import (
    OrganizationFactory,
    OrganizationFeeConfigurationFactory,
)


@pytest.fixture
def organization(db):
    """Create a test organization."""
    return OrganizationFactory()


@pytest.fixture
def fee_configuration(db, organization):
    """Create a fee configuration with default values."""
    return OrganizationFeeConfigurationFactory(organization=organization)
