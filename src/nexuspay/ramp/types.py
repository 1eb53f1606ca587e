"""
Enumerations shared by the ramp fee engine, persistence and API layers.
"""

from enum import Enum


class RampType(str, Enum):
    """Direction of a ramp transaction."""

    ON_RAMP = "on_ramp"  # fiat -> crypto
    OFF_RAMP = "off_ramp"  # crypto -> fiat


class RampStatus(str, Enum):
    """Lifecycle of a ramp transaction."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """Fiat leg payment rails."""

    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    MOBILE_MONEY = "mobile_money"
    MPESA = "mpesa"


class UserTier(str, Enum):
    """Loyalty tiers, lowest first."""

    TIER_1 = "tier_1"
    TIER_2 = "tier_2"
    TIER_3 = "tier_3"


# Allowed status moves; terminal states have none.
STATUS_TRANSITIONS: dict[RampStatus, frozenset[RampStatus]] = {
    RampStatus.PENDING: frozenset({RampStatus.PROCESSING, RampStatus.FAILED}),
    RampStatus.PROCESSING: frozenset({RampStatus.COMPLETED, RampStatus.FAILED}),
    RampStatus.COMPLETED: frozenset(),
    RampStatus.FAILED: frozenset(),
}
