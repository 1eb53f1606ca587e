"""
Short random identifiers used to correlate log lines across one request.
"""

import secrets
import string

_ALPHABET = string.digits + string.ascii_lowercase


def generate_request_id(length: int = 9) -> str:
    """Return a random base-36 string, e.g. ``'k3x9q0a2b'``."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))
