"""
Payment references shown to customers and payment providers.
"""

import secrets
from collections.abc import Callable
from datetime import datetime, timezone


def generate_reference(
    now: datetime | None = None,
    token_hex: Callable[[int], str] = secrets.token_hex,
) -> str:
    """
    Build a reference of the form ``NP-YYYYMMDDHHMMSS-ABC123``.

    Args:
        now: Timestamp to embed (defaults to the current UTC time)
        token_hex: Source of the random hex suffix
    """
    now = now or datetime.now(timezone.utc)
    return f"NP-{now.strftime('%Y%m%d%H%M%S')}-{token_hex(3).upper()}"
