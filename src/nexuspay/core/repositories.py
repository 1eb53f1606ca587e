"""
Repository layer for data access abstraction.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from nexuspay.core.models import RampTransaction, User


class BaseRepository:
    """Base repository with common CRUD operations."""

    def __init__(self, db: Session, model_class):
        self.db = db
        self.model_class = model_class

    def create(self, **kwargs):
        """Create a new record."""
        instance = self.model_class(**kwargs)
        self.db.add(instance)
        self.db.flush()
        return instance

    def get_by_id(self, id: str):
        """Get record by ID."""
        return self.db.get(self.model_class, id)


class UserRepository(BaseRepository):
    """Repository for User operations."""

    def __init__(self, db: Session):
        super().__init__(db, User)


class RampTransactionRepository(BaseRepository):
    """Repository for RampTransaction operations."""

    def __init__(self, db: Session):
        super().__init__(db, RampTransaction)

    def get_by_reference(self, payment_reference: str) -> Optional[RampTransaction]:
        return self.db.query(RampTransaction).filter(
            RampTransaction.payment_reference == payment_reference
        ).first()

    def reference_exists(self, payment_reference: str) -> bool:
        return self.get_by_reference(payment_reference) is not None

    def list_for_user(
        self,
        user_id: str,
        ramp_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[RampTransaction]:
        """User's transactions, newest first, optionally filtered by type and status."""
        query = self.db.query(RampTransaction).filter(RampTransaction.user_id == user_id)
        if ramp_type:
            query = query.filter(RampTransaction.type == ramp_type)
        if status:
            query = query.filter(RampTransaction.status == status)
        return query.order_by(desc(RampTransaction.created_at)).all()

    def get_stats_for_user(self, user_id: str) -> Dict[str, Any]:
        """Aggregate volume, fees and processing time over all of a user's transactions."""
        row = self.db.query(
            func.coalesce(func.sum(RampTransaction.fiat_amount), 0.0),
            func.coalesce(func.sum(RampTransaction.fee_amount), 0.0),
            func.avg(RampTransaction.processing_time),
            func.count(RampTransaction.id),
        ).filter(RampTransaction.user_id == user_id).one()

        total_volume, total_fees, average_processing_time, transaction_count = row
        return {
            "total_volume": float(total_volume or 0),
            "total_fees": float(total_fees or 0),
            "average_processing_time": float(average_processing_time or 0),
            "transaction_count": int(transaction_count or 0),
        }
