"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the organizations and debts apps. No
ledger rules live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - VersionedMixin: Optimistic-locking version column

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures
    - NotFoundError: Record not found
    - ConflictError: State conflicts (duplicates, concurrent modifications)

Money (import from core.money):
    - Money, to_decimal, round_money, percentage_of, round_up_to_step

Helpers (import from core.helpers):
    - generate_token: Cryptographically secure token generation
    - generate_reference: Timestamped, collision-resistant business reference

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

# Money
from .money import Money, percentage_of, round_money

# Helpers
from .helpers import generate_reference, generate_token

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    # Money
    "Money",
    "percentage_of",
    "round_money",
    # Helpers
    "generate_reference",
    "generate_token",
]
