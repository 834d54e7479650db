"""
Generic helper functions.

Functions:
    generate_token: Cryptographically secure random token
    generate_reference: Human-readable reference with timestamp and random suffix
"""

from __future__ import annotations

import secrets
from typing import TYPE_CHECKING

from django.utils import timezone

if TYPE_CHECKING:
    from datetime import datetime


def generate_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        length: Number of bytes (resulting string is 2x length in hex)

    Returns:
        Hexadecimal token string
    """
    return secrets.token_hex(length)


def generate_reference(prefix: str, at: datetime | None = None) -> str:
    """
    Build a reference such as ``PP-20250301093015-9F2C41AB``.

    The timestamp keeps references sortable for humans; the random
    suffix keeps two references created in the same second distinct.

    Args:
        prefix: Leading label, e.g. "PP" or "PP-CUSTOM"
        at: Timestamp to embed (defaults to now)
    """
    at = at or timezone.now()
    return f"{prefix}-{at:%Y%m%d%H%M%S}-{generate_token(4).upper()}"
