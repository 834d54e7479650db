"""
Debts app configuration.
"""

from django.apps import AppConfig


class DebtsConfig(AppConfig):
    """Configuration for the debts application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "debts"
    verbose_name = "Debts"

    def ready(self):
        """Import signals so receivers defined elsewhere can connect."""
        from debts import signals  # noqa: F401
