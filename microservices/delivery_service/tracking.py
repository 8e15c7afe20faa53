"""
Tracking Number Generation

Tracking numbers are short, upper-case and safe to read out to a customer.
"""

import secrets
import string

TRACKING_ALPHABET = string.ascii_uppercase + string.digits
DEFAULT_TRACKING_NUMBER_LENGTH = 10


def generate_tracking_number(length: int = DEFAULT_TRACKING_NUMBER_LENGTH) -> str:
    """Random tracking number drawn from A-Z0-9 (36^10 combinations by default)."""
    if length < 6:
        raise ValueError("Tracking numbers need at least 6 characters")
    return "".join(secrets.choice(TRACKING_ALPHABET) for _ in range(length))


def normalize_tracking_number(tracking_number: str) -> str:
    """Canonical form used for storage and lookups."""
    return tracking_number.strip().upper()
