"""
Celery configuration for the debt ledger.

Celery runs the scheduled collection jobs:
- Arrears processing (late fees, in-arrears status, plan defaults)
- Settlement offer expiry
- Daily interest accrual
- Failed payment retry flagging

Redis is both the message broker and the result backend. Tasks are
auto-discovered from every installed Django app, and celery-beat reads
its schedule from CELERY_BEAT_SCHEDULE in settings.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("debt_ledger")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery looks for a tasks.py module in each installed app
app.autodiscover_tasks()
