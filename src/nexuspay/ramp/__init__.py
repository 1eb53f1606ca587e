"""
Fiat <-> crypto ramp transactions: fee engine, token table and service.
"""

from .fees import DEFAULT_FEE_SCHEDULE, FeeBreakdown, FeeCalculator, FeeSchedule
from .types import PaymentMethod, RampStatus, RampType, UserTier

__all__ = [
    "DEFAULT_FEE_SCHEDULE",
    "FeeBreakdown",
    "FeeCalculator",
    "FeeSchedule",
    "PaymentMethod",
    "RampStatus",
    "RampType",
    "UserTier",
]
