"""
Concurrency control for debt ledger mutations.

Every mutation of a Debt (status change, payment, fee, interest) is
serialized per debt. Two mechanisms work together:

1. **Distributed Locks** (DistributedLock, debt_lock, scan_lock)
   - Redis-based mutual exclusion keyed by debt id
   - TTL prevents deadlocks from crashed workers
   - Different debts never contend
   - scan_lock lets only one beat scan of each kind run at a time

2. **Optimistic Locking** (check_version)
   - Version-based conflict detection for callers that read a debt,
     show it to a person, and write back later

Usage:

    from debts.locks import check_version, debt_lock

    with debt_lock(debt_id):
        with transaction.atomic():
            debt = Debt.objects.select_for_update().get(pk=debt_id)
            debt.apply_payment(amount, at)
            debt.save()  # Version auto-increments

    with transaction.atomic():
        debt = check_version(Debt, debt_id, expected_version=3)
        debt.append_note("Called debtor")
        debt.save()
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from debts.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

# Type variable for model classes
T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    Features:
        - Automatic TTL prevents deadlocks from crashed processes
        - Token-based ownership prevents release by another process
        - Blocking and non-blocking acquisition modes

    Example:
        with DistributedLock("debt:3f2c...", ttl=30):
            apply_payment()

        lock = DistributedLock("scan:overdue-installments", ttl=300, blocking=False)
        try:
            with lock:
                scan()
        except LockAcquisitionError:
            # Another worker is already scanning
            pass

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() waits until lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    # Lua script for atomic check-and-delete (release)
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        """Get Redis connection (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Attempt to acquire the lock.

        Returns:
            True if lock was acquired

        Raises:
            LockAcquisitionError: If lock couldn't be acquired
        """
        self._token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            end_time = time.time() + self.timeout
            while time.time() < end_time:
                if self._try_acquire(redis):
                    return True
                time.sleep(0.05)

            self._token = None
            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not self._try_acquire(redis):
            self._token = None
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        return True

    def _try_acquire(self, redis: Redis) -> bool:
        return bool(redis.set(self.key, self._token, nx=True, ex=self.ttl))

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if lock was released, False if we didn't hold it
        """
        if self._token is None:
            return False

        redis = self._get_redis()
        result = redis.eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        """Check if we currently hold the lock."""
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def debt_lock(debt_id) -> DistributedLock:
    """Lock serializing every mutation of one debt."""
    return DistributedLock(
        f"debt:{debt_id}",
        ttl=settings.DEBT_LOCK_TTL_SECONDS,
        timeout=settings.DEBT_LOCK_TIMEOUT_SECONDS,
    )


def scan_lock(name: str) -> DistributedLock:
    """Lock held for one run of a beat scan. A second concurrent run fails fast."""
    return DistributedLock(
        f"scan:{name}",
        ttl=settings.SCAN_LOCK_TTL_SECONDS,
        blocking=False,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Atomically check version and lock a record for update.

    Args:
        model_class: Django model class (must have 'version' field)
        pk: Primary key of the record
        expected_version: Version the caller expects

    Returns:
        The locked model instance (within a transaction)

    Raises:
        StaleRecordError: If version doesn't match (concurrent modification)
        NotFoundError: If record doesn't exist

    Note:
        Must be called within a transaction context. The row lock is held
        until the transaction commits or rolls back.
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )

        if instance is None:
            model_name = model_class.__name__
            current = model_class.objects.filter(pk=pk).values("version").first()
            if current is None:
                raise NotFoundError(
                    f"{model_name} {pk} not found",
                    error_code=f"{model_name.upper()}_NOT_FOUND",
                    details={"pk": str(pk)},
                )

            raise StaleRecordError(
                f"{model_name} {pk} has been modified "
                f"(expected version {expected_version}, current {current['version']})",
                details={
                    "pk": str(pk),
                    "expected_version": expected_version,
                    "current_version": current["version"],
                },
            )

        return instance


__all__ = [
    "DistributedLock",
    "check_version",
    "debt_lock",
    "scan_lock",
]
