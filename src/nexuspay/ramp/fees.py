"""
Ramp transaction fee engine.

Fees are a percentage of the fiat amount: a base rate per payment method,
minus at most one volume discount, minus a loyalty discount, floored at a
minimum rate. All arithmetic is done in ``Decimal`` so percentages such as
``1.2 - 0.1`` stay exact.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from .types import PaymentMethod, UserTier

Number = int | float | Decimal


def to_decimal(value: Number | str) -> Decimal:
    """Convert ``value`` without dragging binary float noise along."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class VolumeDiscount:
    threshold: Decimal
    discount: Decimal


@dataclass(frozen=True)
class FeeSchedule:
    """
    Fee tables used by :class:`FeeCalculator`.

    ``volume_discounts`` is scanned in the order given and the first entry
    whose threshold the amount reaches wins, so with the default ascending
    table a 150,000 transfer gets the 10,000-tier discount.
    """

    base_fees: Mapping[PaymentMethod, Decimal]
    volume_discounts: Sequence[VolumeDiscount]
    loyalty_discounts: Mapping[str, Decimal]
    minimum_fee_percentage: Decimal = Decimal("0.5")


DEFAULT_FEE_SCHEDULE = FeeSchedule(
    base_fees=MappingProxyType({
        PaymentMethod.BANK_TRANSFER: Decimal("1.0"),
        PaymentMethod.CARD: Decimal("2.5"),
        PaymentMethod.MOBILE_MONEY: Decimal("1.5"),
        PaymentMethod.MPESA: Decimal("1.2"),
    }),
    volume_discounts=(
        VolumeDiscount(threshold=Decimal("10000"), discount=Decimal("0.2")),
        VolumeDiscount(threshold=Decimal("50000"), discount=Decimal("0.5")),
        VolumeDiscount(threshold=Decimal("100000"), discount=Decimal("0.8")),
    ),
    loyalty_discounts=MappingProxyType({
        UserTier.TIER_1.value: Decimal("0.1"),
        UserTier.TIER_2.value: Decimal("0.2"),
        UserTier.TIER_3.value: Decimal("0.3"),
    }),
)


@dataclass(frozen=True)
class FeeBreakdown:
    fee_percentage: Decimal
    fee_amount: Decimal
    total_amount: Decimal

    def as_dict(self) -> dict[str, float]:
        return {
            "feePercentage": float(self.fee_percentage),
            "feeAmount": float(self.fee_amount),
            "totalAmount": float(self.total_amount),
        }


@dataclass(frozen=True)
class SavingsProjection:
    current_fees: Decimal
    potential_fees: Decimal
    savings: Decimal

    def as_dict(self) -> dict[str, float]:
        return {
            "currentFees": float(self.current_fees),
            "potentialFees": float(self.potential_fees),
            "savings": float(self.savings),
        }


def normalize_tier(tier: UserTier | str | None) -> str:
    """Lower-case tier key; ``None`` means the lowest tier."""
    if tier is None:
        return UserTier.TIER_1.value
    if isinstance(tier, UserTier):
        return tier.value
    return str(tier).strip().lower()


def normalize_payment_method(method: PaymentMethod | str) -> PaymentMethod:
    if isinstance(method, PaymentMethod):
        return method
    return PaymentMethod(str(method).strip().lower())


@dataclass
class FeeCalculator:
    """Pure fee computation over an injected :class:`FeeSchedule`."""

    schedule: FeeSchedule = field(default=DEFAULT_FEE_SCHEDULE)

    def volume_discount_for(self, amount: Decimal) -> Decimal:
        for entry in self.schedule.volume_discounts:
            if amount >= entry.threshold:
                return entry.discount
        return Decimal("0")

    def loyalty_discount_for(self, tier: UserTier | str | None) -> Decimal:
        return self.schedule.loyalty_discounts.get(normalize_tier(tier), Decimal("0"))

    def calculate_fees(
        self,
        amount: Number,
        payment_method: PaymentMethod | str,
        user_tier: UserTier | str | None = UserTier.TIER_1,
    ) -> FeeBreakdown:
        """
        Compute the fee percentage, fee amount and total payable.

        Args:
            amount: Fiat amount of the transaction
            payment_method: Payment rail used for the fiat leg
            user_tier: Loyalty tier; unknown tiers get no loyalty discount

        Returns:
            Fee breakdown with ``total_amount == amount + fee_amount``
        """
        amount = to_decimal(amount)
        method = normalize_payment_method(payment_method)

        fee_percentage = self.schedule.base_fees[method]
        fee_percentage -= self.volume_discount_for(amount)
        fee_percentage -= self.loyalty_discount_for(user_tier)
        fee_percentage = max(fee_percentage, self.schedule.minimum_fee_percentage)

        fee_amount = amount * fee_percentage / Decimal(100)
        return FeeBreakdown(
            fee_percentage=fee_percentage,
            fee_amount=fee_amount,
            total_amount=amount + fee_amount,
        )

    def calculate_potential_savings(
        self,
        amount: Number,
        current_tier: UserTier | str,
        next_tier: UserTier | str,
    ) -> SavingsProjection:
        """Compare bank-transfer fees for the same amount under two tiers."""
        current = self.calculate_fees(amount, PaymentMethod.BANK_TRANSFER, current_tier)
        potential = self.calculate_fees(amount, PaymentMethod.BANK_TRANSFER, next_tier)
        return SavingsProjection(
            current_fees=current.fee_amount,
            potential_fees=potential.fee_amount,
            savings=current.fee_amount - potential.fee_amount,
        )
