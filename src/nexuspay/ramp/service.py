"""
Ramp transaction service.

Creates fiat <-> crypto ramp transactions with their fee breakdown and moves
them through ``pending -> processing -> completed | failed``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from nexuspay.core.exceptions import (
    create_invalid_transition_error,
    create_transaction_not_found_error,
    create_user_not_found_error,
    create_validation_error,
)
from nexuspay.core.models import RampTransaction, User
from nexuspay.core.observability import increment_counter
from nexuspay.core.repositories import RampTransactionRepository, UserRepository
from nexuspay.utils.logging import get_logger

from .fees import FeeCalculator, SavingsProjection, normalize_tier, to_decimal
from .reference import generate_reference
from .tokens import resolve_chain
from .types import STATUS_TRANSITIONS, PaymentMethod, RampStatus, RampType, UserTier

logger = get_logger("ramp")

Executor = Callable[[RampTransaction], Awaitable[Any]]

MAX_REFERENCE_ATTEMPTS = 5


@dataclass(frozen=True)
class RampTransactionInput:
    """Caller-supplied fields of a new ramp transaction."""

    type: RampType | str
    payment_method: PaymentMethod | str
    fiat_currency: str
    fiat_amount: float
    crypto_token: str
    chain: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_enum(enum_cls, value, field_name: str):
    try:
        return value if isinstance(value, enum_cls) else enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise create_validation_error(
            f"Invalid {field_name}: {value}", field=field_name, allowed=allowed
        ) from None


class RampService:
    """
    Ramp transaction operations over one database session.

    Args:
        session: SQLAlchemy session; each state change is committed
        fee_calculator: Fee engine (defaults to the standard fee schedule)
        clock: Returns the current aware datetime
        reference_factory: Builds a payment reference from a timestamp
    """

    def __init__(
        self,
        session: Session,
        fee_calculator: Optional[FeeCalculator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        reference_factory: Optional[Callable[[datetime], str]] = None,
    ):
        self.session = session
        self.fee_calculator = fee_calculator or FeeCalculator()
        self.clock = clock or _utcnow
        self.reference_factory = reference_factory or generate_reference
        self.users = UserRepository(session)
        self.transactions = RampTransactionRepository(session)

    def _get_user(self, user_id: str) -> User:
        user = self.users.get_by_id(user_id)
        if user is None:
            raise create_user_not_found_error(user_id)
        return user

    def _get_transaction(self, transaction_id: str) -> RampTransaction:
        transaction = self.transactions.get_by_id(transaction_id)
        if transaction is None:
            raise create_transaction_not_found_error(transaction_id)
        return transaction

    def _new_reference(self, now: datetime) -> str:
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            reference = self.reference_factory(now)
            if not self.transactions.reference_exists(reference):
                return reference
        raise RuntimeError("Could not generate a unique payment reference")

    def _transition(self, transaction: RampTransaction, target: RampStatus) -> None:
        current = RampStatus(transaction.status)
        if target not in STATUS_TRANSITIONS[current]:
            raise create_invalid_transition_error(transaction.id, current.value, target.value)
        transaction.status = target.value
        transaction.updated_at = self.clock()

    def create_transaction(self, user_id: str, data: RampTransactionInput) -> RampTransaction:
        """
        Create a pending ramp transaction with its fees computed from the user's tier.

        Raises:
            UserNotFoundError: If the user does not exist
            ValidationError: If the amount is not a positive finite number or an enum value is unknown
            UnsupportedTokenError: If no configured chain lists the token
        """
        user = self._get_user(user_id)

        ramp_type = _parse_enum(RampType, data.type, "type")
        payment_method = _parse_enum(PaymentMethod, data.payment_method, "paymentMethod")

        fiat_amount = to_decimal(data.fiat_amount)
        if not fiat_amount.is_finite() or fiat_amount <= 0:
            raise create_validation_error(
                "Invalid amount", code="INVALID_AMOUNT", fiat_amount=str(fiat_amount)
            )

        token = data.crypto_token.strip().upper()
        chain = resolve_chain(token, data.chain)

        tier = normalize_tier(user.tier or UserTier.TIER_1)
        fees = self.fee_calculator.calculate_fees(fiat_amount, payment_method, tier)

        now = self.clock()
        transaction = self.transactions.create(
            user_id=user.id,
            type=ramp_type.value,
            status=RampStatus.PENDING.value,
            payment_method=payment_method.value,
            fiat_currency=data.fiat_currency.strip().upper(),
            fiat_amount=float(fiat_amount),
            crypto_token=token,
            chain=chain,
            # No price feed: crypto leg mirrors the fiat amount
            crypto_amount=float(fiat_amount),
            fee_percentage=float(fees.fee_percentage),
            fee_amount=float(fees.fee_amount),
            total_amount=float(fees.total_amount),
            payment_reference=self._new_reference(now),
            created_at=now,
            updated_at=now,
        )
        self.session.commit()

        increment_counter(
            "ramp_transactions_created_total",
            {"type": ramp_type.value, "payment_method": payment_method.value},
        )
        logger.info(
            f"Created {ramp_type.value} transaction {transaction.id} "
            f"({transaction.fiat_amount} {transaction.fiat_currency}, fee {transaction.fee_percentage}%)"
        )
        return transaction

    def start_processing(self, transaction_id: str) -> RampTransaction:
        transaction = self._get_transaction(transaction_id)
        self._transition(transaction, RampStatus.PROCESSING)
        transaction.processing_started_at = transaction.updated_at
        self.session.commit()
        return transaction

    def complete_transaction(self, transaction_id: str) -> RampTransaction:
        """Mark a processing transaction completed and record its processing time in minutes."""
        transaction = self._get_transaction(transaction_id)
        self._transition(transaction, RampStatus.COMPLETED)

        finished_at = _as_utc(transaction.updated_at)
        if transaction.processing_started_at is not None:
            elapsed = finished_at - _as_utc(transaction.processing_started_at)
            transaction.processing_time = elapsed.total_seconds() / 60
        self.session.commit()

        increment_counter("ramp_transactions_finished_total", {"status": RampStatus.COMPLETED.value})
        logger.info(f"Transaction {transaction.id} completed in {transaction.processing_time} min")
        return transaction

    def fail_transaction(self, transaction_id: str, reason: Optional[str] = None) -> RampTransaction:
        transaction = self._get_transaction(transaction_id)
        self._transition(transaction, RampStatus.FAILED)
        transaction.failure_reason = reason
        self.session.commit()

        increment_counter("ramp_transactions_finished_total", {"status": RampStatus.FAILED.value})
        logger.warning(f"Transaction {transaction.id} failed: {reason}")
        return transaction

    async def process_transaction(
        self,
        transaction_id: str,
        executor: Optional[Executor] = None,
    ) -> RampTransaction:
        """
        Run a pending transaction to completion.

        The executor settles the fiat and crypto legs; when it raises, the
        transaction is marked failed and the error propagates.
        """
        transaction = self.start_processing(transaction_id)
        try:
            if executor is not None:
                await executor(transaction)
        except Exception as e:
            self.fail_transaction(transaction_id, str(e))
            raise
        return self.complete_transaction(transaction_id)

    def get_user_transactions(
        self,
        user_id: str,
        ramp_type: RampType | str | None = None,
        status: RampStatus | str | None = None,
    ) -> List[RampTransaction]:
        """User's transactions, newest first."""
        type_value = _parse_enum(RampType, ramp_type, "type").value if ramp_type else None
        status_value = _parse_enum(RampStatus, status, "status").value if status else None
        return self.transactions.list_for_user(user_id, type_value, status_value)

    def get_transaction_stats(self, user_id: str) -> Dict[str, Any]:
        return self.transactions.get_stats_for_user(user_id)

    def calculate_potential_savings(
        self,
        amount: float,
        current_tier: UserTier | str,
        next_tier: UserTier | str,
    ) -> SavingsProjection:
        return self.fee_calculator.calculate_potential_savings(amount, current_tier, next_tier)


__all__ = ["RampService", "RampTransactionInput"]
