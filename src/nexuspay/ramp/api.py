"""
Ramp transaction API router, mounted at ``/api/ramp``.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy.orm import Session

from nexuspay.core.database import get_db
from nexuspay.core.models import User
from nexuspay.core.schemas import standard_response
from nexuspay.core.security import get_current_user

from .schemas import CalculateSavingsRequest, CreateRampTransactionRequest
from .service import RampService, RampTransactionInput


def get_ramp_service(db: Session = Depends(get_db)) -> RampService:
    """Dependency injection for the ramp service."""
    return RampService(db)


def create_ramp_router() -> APIRouter:
    """Create the authenticated ramp router."""
    router = APIRouter(prefix="/ramp", tags=["ramp"])

    @router.post("/transaction")
    async def create_ramp_transaction(
        body: CreateRampTransactionRequest,
        user: User = Depends(get_current_user),
        service: RampService = Depends(get_ramp_service),
    ) -> dict:
        """Create a pending on- or off-ramp transaction for the caller."""
        transaction = service.create_transaction(
            user.id,
            RampTransactionInput(
                type=body.type,
                payment_method=body.payment_method,
                fiat_currency=body.fiat_currency,
                fiat_amount=body.fiat_amount,
                crypto_token=body.crypto_token,
                chain=body.chain,
            ),
        )
        return standard_response(True, "Ramp transaction created successfully", transaction.to_dict())

    @router.get("/transactions")
    async def get_user_transactions(
        type: Optional[str] = None,
        status: Optional[str] = None,
        user: User = Depends(get_current_user),
        service: RampService = Depends(get_ramp_service),
    ) -> dict:
        """Caller's transactions, newest first."""
        transactions = service.get_user_transactions(user.id, type, status)
        return standard_response(
            True,
            "Transactions retrieved successfully",
            [transaction.to_dict() for transaction in transactions],
        )

    @router.get("/stats")
    async def get_transaction_stats(
        user: User = Depends(get_current_user),
        service: RampService = Depends(get_ramp_service),
    ) -> dict:
        stats = service.get_transaction_stats(user.id)
        return standard_response(
            True,
            "Transaction statistics retrieved successfully",
            {
                "totalVolume": stats["total_volume"],
                "totalFees": stats["total_fees"],
                "averageProcessingTime": stats["average_processing_time"],
                "transactionCount": stats["transaction_count"],
            },
        )

    @router.post("/calculate-savings")
    async def calculate_savings(
        body: CalculateSavingsRequest,
        user: User = Depends(get_current_user),
        service: RampService = Depends(get_ramp_service),
    ) -> dict:
        """Compare bank-transfer fees for the amount under two tiers."""
        projection = service.calculate_potential_savings(body.amount, body.current_tier, body.next_tier)
        logger.debug(f"Savings for user {user.id}: {projection.savings}")
        return standard_response(True, "Savings calculation completed", projection.as_dict())

    return router
