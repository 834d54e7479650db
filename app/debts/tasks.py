"""
Celery tasks for scheduled collection work.

This module provides async tasks for:
- Scanning for overdue installments and processing arrears per debt
- Expiring settlement offers
- Accruing daily interest per debt
- Flagging failed payments for a retry

Scan tasks run from celery-beat (see CELERY_BEAT_SCHEDULE) and fan out one
task per debt, so a slow or locked debt never holds up the rest. The fan-out
scans hold a non-blocking scan lock while they queue.

Usage:
    from debts.tasks import process_debt_arrears

    process_debt_arrears.delay(str(debt_id))
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import OperationalError
from django.utils import timezone

from debts.exceptions import LockAcquisitionError
from debts.locks import scan_lock
from debts.services import CollectionService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_DEBT_TASK_RETRIES = 5


# =============================================================================
# Arrears
# =============================================================================


@shared_task
def scan_overdue_installments() -> dict:
    """
    Queue arrears processing for every debt with an overdue installment.

    Skipped when another run of this scan still holds the scan lock.

    Returns:
        Dict with count of debts queued
    """
    try:
        lock = scan_lock("overdue-installments")
        lock.acquire()
    except LockAcquisitionError:
        logger.warning("Overdue installment scan already running, skipping")
        return {"queued_count": 0, "skipped": True}

    try:
        debt_ids = CollectionService.debts_with_overdue_installments(timezone.now())

        queued_count = 0
        for debt_id in debt_ids:
            try:
                process_debt_arrears.delay(str(debt_id))
                queued_count += 1
            except Exception as e:
                logger.error(
                    f"Failed to queue arrears processing for debt {debt_id}: {e}",
                    extra={"debt_id": str(debt_id)},
                )
    finally:
        lock.release()

    logger.info(
        f"Queued {queued_count} debts for arrears processing",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError, OperationalError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_DEBT_TASK_RETRIES},
    acks_late=True,
)
def process_debt_arrears(self, debt_id: str) -> dict:
    """
    Apply late fees, arrears status and plan default rules to one debt.

    Retried only when the debt lock or the database is briefly unavailable.

    Args:
        debt_id: UUID of the Debt

    Returns:
        Dict describing what changed
    """
    outcome = CollectionService.process_arrears(debt_id, timezone.now())
    return {
        "status": "processed",
        "debt_id": debt_id,
        "overdue_count": outcome.overdue_count,
        "late_fees_applied": outcome.late_fees_applied,
        "late_fee_total": str(outcome.late_fee_total),
        "marked_in_arrears": outcome.marked_in_arrears,
        "plan_defaulted": outcome.plan_defaulted,
    }


# =============================================================================
# Settlement Offers
# =============================================================================


@shared_task
def expire_settlement_offers() -> dict:
    """
    Reject settlement offers whose expiry has passed.

    Returns:
        Dict with count of offers expired
    """
    expired_count = CollectionService.expire_settlement_offers(timezone.now())
    logger.info(
        f"Expired {expired_count} settlement offers",
        extra={"expired_count": expired_count},
    )
    return {"expired_count": expired_count}


# =============================================================================
# Interest
# =============================================================================


@shared_task
def accrue_daily_interest() -> dict:
    """
    Queue interest accrual for every open interest-bearing debt.

    Skipped when another run of this scan still holds the scan lock.

    Returns:
        Dict with count of debts queued
    """
    try:
        lock = scan_lock("daily-interest")
        lock.acquire()
    except LockAcquisitionError:
        logger.warning("Daily interest scan already running, skipping")
        return {"queued_count": 0, "skipped": True}

    try:
        queued_count = 0
        for debt_id in CollectionService.debts_accruing_interest():
            try:
                accrue_interest_for_debt.delay(str(debt_id))
                queued_count += 1
            except Exception as e:
                logger.error(
                    f"Failed to queue interest accrual for debt {debt_id}: {e}",
                    extra={"debt_id": str(debt_id)},
                )
    finally:
        lock.release()

    logger.info(
        f"Queued {queued_count} debts for interest accrual",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError, OperationalError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_DEBT_TASK_RETRIES},
    acks_late=True,
)
def accrue_interest_for_debt(self, debt_id: str) -> dict:
    interest = CollectionService.accrue_interest(debt_id, timezone.now())
    return {"status": "accrued", "debt_id": debt_id, "amount": str(interest)}


# =============================================================================
# Failed Payments
# =============================================================================


@shared_task
def flag_failed_payments_for_retry() -> dict:
    """
    Tag recent failed inbound payments for follow-up.

    Returns:
        Dict with count of transactions flagged
    """
    flagged_count = CollectionService.flag_failed_payments_for_retry(timezone.now())
    logger.info(
        f"Flagged {flagged_count} failed payments for retry",
        extra={"flagged_count": flagged_count},
    )
    return {"flagged_count": flagged_count}
