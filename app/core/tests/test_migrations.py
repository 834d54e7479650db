"""
Tests that committed migrations match the models.

The suite runs with --nomigrations, so this re-enables migration modules
and asks makemigrations whether anything is missing.
"""

from io import StringIO

import pytest
from django.core.management import call_command


@pytest.mark.django_db
class TestMigrationsInSync:
    """Tests for the committed migration files."""

    @pytest.mark.parametrize("app_label", ["organizations", "debts"])
    def test_no_missing_migrations(self, settings, app_label):
        """Should detect no model changes without a migration."""
        settings.MIGRATION_MODULES = {}
        out = StringIO()

        call_command("makemigrations", app_label, "--check", "--dry-run", stdout=out)

        assert "No changes detected" in out.getvalue()
