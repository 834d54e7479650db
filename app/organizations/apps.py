"""
Organizations app configuration.

This app owns the creditor organizations and their fee policies:
- Organization records
- Per-organization fee configuration (discounts, admin fees, late fees)
"""

from django.apps import AppConfig


class OrganizationsConfig(AppConfig):
    """Configuration for the organizations application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "organizations"
    verbose_name = "Organizations"
