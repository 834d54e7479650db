"""
Base exception classes for application-wide error handling.

This module provides the root of the exception hierarchy used by every app:
- Consistent error payloads for whoever calls into the ledger
- Machine-readable error codes for client handling
- Detailed error information for debugging

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or business-rule validation failures
    ├── NotFoundError - Record not found
    └── ConflictError - State conflicts (duplicates, concurrent modifications)

Usage:
    from core.exceptions import ValidationError, NotFoundError

    # Raise with message only
    raise ValidationError("Percentage must be between 0 and 100")

    # Raise with error code for client handling
    raise NotFoundError("Organization not found", error_code="ORGANIZATION_NOT_FOUND")

    # Raise with additional details
    raise ValidationError(
        "Invalid fee configuration",
        error_code="INVALID_FEE_CONFIGURATION",
        details={"late_fee_percentage": ["Must be between 0 and 100"]},
    )

    # Convert to dict for a client response
    try:
        ...
    except BaseApplicationError as e:
        payload = e.to_dict()

Note:
    Every error in this hierarchy is a precondition or business-rule
    violation. Callers should surface them as 4xx responses, never 5xx.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, amounts)

    Example:
        try:
            debt = DebtService.get_debt(debt_id)
        except NotFoundError as e:
            logger.warning(f"Debt not found: {e.error_code}")
            return e.to_dict()
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary suitable for a response body.

        Returns:
            Dict with error, error_code, and details keys

        Example:
            {
                "error": "Debt 3f2... is closed",
                "error_code": "DEBT_CLOSED",
                "details": {"debt_id": "3f2...", "status": "settled"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation fails.

    Use for:
    - Out-of-range percentages or negative amounts
    - Business rule violations (schedule shorter than the balance, etc.)
    - Field-level validation errors

    Example:
        raise ValidationError(
            "Invalid installment rules",
            error_code="INVALID_FEE_CONFIGURATION",
            details={"max_installment_count": ["Must be at least 1"]},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested record is not found.

    Example:
        debt = Debt.objects.filter(id=debt_id).first()
        if not debt:
            raise NotFoundError(
                f"Debt {debt_id} not found",
                error_code="DEBT_NOT_FOUND",
                details={"debt_id": str(debt_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current record state.

    Use for:
    - Duplicate entries (unique constraint violations)
    - Concurrent modification conflicts
    - Optimistic locking failures

    Note:
        HTTP 409 Conflict is the appropriate status for these errors.
    """

    default_error_code: str = "CONFLICT"


__all__ = [
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
