from datetime import timedelta
from itertools import count

import pytest

from conftest import FIXED_NOW, SteppingClock
from nexuspay.core.exceptions import (
    InvalidStatusTransitionError,
    TransactionNotFoundError,
    UnsupportedTokenError,
    UserNotFoundError,
    ValidationError,
)
from nexuspay.core.models import RampTransaction
from nexuspay.ramp.service import RampService, RampTransactionInput
from nexuspay.ramp.types import RampStatus


def ramp_input(**overrides) -> RampTransactionInput:
    fields = {
        "type": "on_ramp",
        "payment_method": "mpesa",
        "fiat_currency": "KES",
        "fiat_amount": 5000,
        "crypto_token": "USDC",
    }
    fields.update(overrides)
    return RampTransactionInput(**fields)


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def service(db_session, clock) -> RampService:
    return RampService(db_session, clock=clock)


class TestCreateTransaction:
    """Creating pending transactions with fees."""

    def test_fees_follow_user_tier(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input())

        assert transaction.status == "pending"
        assert transaction.fee_percentage == pytest.approx(1.1)
        assert transaction.fee_amount == pytest.approx(55.0)
        assert transaction.total_amount == pytest.approx(5055.0)
        assert transaction.crypto_amount == transaction.fiat_amount
        assert transaction.chain == "arbitrum"
        assert transaction.payment_reference.startswith("NP-20240501123045-")

    def test_stored_tier_is_case_insensitive(self, service: RampService, vip_user) -> None:
        transaction = service.create_transaction(
            vip_user.id, ramp_input(payment_method="CARD", fiat_amount=10000)
        )

        assert transaction.payment_method == "card"
        assert transaction.fee_percentage == pytest.approx(2.0)
        assert transaction.total_amount == pytest.approx(10200.0)

    def test_unknown_user(self, service: RampService, db_session) -> None:
        with pytest.raises(UserNotFoundError):
            service.create_transaction("missing-user", ramp_input())

        assert db_session.query(RampTransaction).count() == 0

    @pytest.mark.parametrize("amount", [0, -50])
    def test_non_positive_amount_is_rejected(self, service: RampService, user, db_session, amount) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.create_transaction(user.id, ramp_input(fiat_amount=amount))

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert db_session.query(RampTransaction).count() == 0

    @pytest.mark.parametrize("amount", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_amount_is_rejected(self, service: RampService, user, db_session, amount) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.create_transaction(user.id, ramp_input(fiat_amount=amount))

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert db_session.query(RampTransaction).count() == 0

    def test_unknown_payment_method(self, service: RampService, user) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.create_transaction(user.id, ramp_input(payment_method="paypal"))

        assert exc_info.value.error_code == "INVALID_INPUT"
        assert "mpesa" in exc_info.value.details["allowed"]

    def test_unsupported_token_aborts_creation(self, service: RampService, user, db_session) -> None:
        with pytest.raises(UnsupportedTokenError):
            service.create_transaction(user.id, ramp_input(crypto_token="DOGE"))

        assert db_session.query(RampTransaction).count() == 0

    def test_chain_fallback_is_persisted(self, service: RampService, user, db_session) -> None:
        transaction = service.create_transaction(user.id, ramp_input(crypto_token="arb", chain="polygon"))

        stored = db_session.get(RampTransaction, transaction.id)
        assert stored.crypto_token == "ARB"
        assert stored.chain == "arbitrum"

    def test_requested_chain_is_kept(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input(chain="Base"))

        assert transaction.chain == "base"

    def test_reference_collision_is_retried(self, db_session, user, clock) -> None:
        suffixes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
        service = RampService(
            db_session,
            clock=clock,
            reference_factory=lambda now: f"NP-{now:%Y%m%d%H%M%S}-{next(suffixes)}",
        )
        first = service.create_transaction(user.id, ramp_input())
        second = service.create_transaction(user.id, ramp_input())

        assert first.payment_reference.endswith("AAAAAA")
        assert second.payment_reference.endswith("BBBBBB")

    def test_reference_attempts_are_bounded(self, db_session, user, clock) -> None:
        service = RampService(db_session, clock=clock, reference_factory=lambda now: "NP-FIXED")
        service.create_transaction(user.id, ramp_input())

        with pytest.raises(RuntimeError, match="unique payment reference"):
            service.create_transaction(user.id, ramp_input())


class TestLifecycle:
    """``pending -> processing -> completed | failed``."""

    def test_complete_records_processing_minutes(self, service: RampService, user, clock) -> None:
        transaction = service.create_transaction(user.id, ramp_input())
        service.start_processing(transaction.id)
        clock.advance(timedelta(minutes=6))

        completed = service.complete_transaction(transaction.id)

        assert completed.status == "completed"
        # 6 minutes plus the one-second clock step
        assert completed.processing_time == pytest.approx(6 + 1 / 60)

    def test_fail_records_reason(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input())

        failed = service.fail_transaction(transaction.id, "M-Pesa payment declined")

        assert failed.status == "failed"
        assert failed.failure_reason == "M-Pesa payment declined"
        assert failed.processing_time is None

    @pytest.mark.parametrize("finish", ["complete_transaction", "fail_transaction"])
    def test_terminal_states_are_final(self, service: RampService, user, finish: str) -> None:
        transaction = service.create_transaction(user.id, ramp_input())
        service.start_processing(transaction.id)
        getattr(service, finish)(transaction.id)

        with pytest.raises(InvalidStatusTransitionError):
            service.start_processing(transaction.id)
        with pytest.raises(InvalidStatusTransitionError):
            service.fail_transaction(transaction.id)

    def test_pending_cannot_complete(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input())

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            service.complete_transaction(transaction.id)

        assert exc_info.value.details == {
            "transaction_id": transaction.id,
            "current": "pending",
            "target": "completed",
        }

    def test_unknown_transaction(self, service: RampService) -> None:
        with pytest.raises(TransactionNotFoundError):
            service.start_processing("missing")

    @pytest.mark.asyncio
    async def test_process_transaction_success(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input())
        settled = []

        async def executor(txn: RampTransaction) -> None:
            assert txn.status == "processing"
            settled.append(txn.id)

        result = await service.process_transaction(transaction.id, executor)

        assert result.status == "completed"
        assert settled == [transaction.id]

    @pytest.mark.asyncio
    async def test_process_transaction_failure(self, service: RampService, user) -> None:
        transaction = service.create_transaction(user.id, ramp_input())

        async def executor(txn: RampTransaction) -> None:
            raise ConnectionError("settlement rail unavailable")

        with pytest.raises(ConnectionError):
            await service.process_transaction(transaction.id, executor)

        assert transaction.status == "failed"
        assert transaction.failure_reason == "settlement rail unavailable"


class TestQueries:
    """Listing and statistics."""

    def test_newest_first_with_filters(self, service: RampService, user) -> None:
        first = service.create_transaction(user.id, ramp_input())
        second = service.create_transaction(user.id, ramp_input(type="off_ramp"))
        third = service.create_transaction(user.id, ramp_input())
        service.fail_transaction(third.id, "cancelled")

        assert [t.id for t in service.get_user_transactions(user.id)] == [third.id, second.id, first.id]
        assert [t.id for t in service.get_user_transactions(user.id, ramp_type="ON_RAMP")] == [third.id, first.id]
        assert [t.id for t in service.get_user_transactions(user.id, status=RampStatus.FAILED)] == [third.id]

    def test_other_users_are_excluded(self, service: RampService, user, vip_user) -> None:
        service.create_transaction(vip_user.id, ramp_input())

        assert service.get_user_transactions(user.id) == []

    def test_unknown_status_filter(self, service: RampService, user) -> None:
        with pytest.raises(ValidationError):
            service.get_user_transactions(user.id, status="settled")

    def test_stats(self, service: RampService, user, clock) -> None:
        first = service.create_transaction(user.id, ramp_input(fiat_amount=5000))
        service.create_transaction(user.id, ramp_input(fiat_amount=1000))
        service.start_processing(first.id)
        clock.advance(timedelta(minutes=3) - timedelta(seconds=1))
        service.complete_transaction(first.id)

        stats = service.get_transaction_stats(user.id)

        assert stats["transaction_count"] == 2
        assert stats["total_volume"] == pytest.approx(6000.0)
        assert stats["total_fees"] == pytest.approx(55.0 + 11.0)
        assert stats["average_processing_time"] == pytest.approx(3.0)

    def test_stats_without_transactions(self, service: RampService, user) -> None:
        assert service.get_transaction_stats(user.id) == {
            "total_volume": 0.0,
            "total_fees": 0.0,
            "average_processing_time": 0.0,
            "transaction_count": 0,
        }


def test_savings_delegate_to_fee_engine(service: RampService) -> None:
    projection = service.calculate_potential_savings(10000, "tier_1", "tier_3")

    assert projection.as_dict() == {"currentFees": 70.0, "potentialFees": 50.0, "savings": 20.0}


def test_reference_format_from_clock(db_session, user) -> None:
    ticks = count()
    service = RampService(db_session, clock=lambda: FIXED_NOW + timedelta(seconds=next(ticks)))

    transaction = service.create_transaction(user.id, ramp_input())

    prefix, stamp, suffix = transaction.payment_reference.split("-")
    assert prefix == "NP"
    assert stamp == "20240501123045"
    assert len(suffix) == 6
