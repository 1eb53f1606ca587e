"""
Utility modules for NexusPay.
Provides retry policies, environment helpers and identifier generation.
"""

from .ids import generate_request_id
from .retry import ExponentialBackoff, LinearBackoff, RetryPolicy, build_async_retrying

__all__ = [
    "generate_request_id",
    "ExponentialBackoff",
    "LinearBackoff",
    "RetryPolicy",
    "build_async_retrying",
]
