"""
Database models for NexusPay.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import declarative_base, relationship

from nexuspay.ramp.types import RampStatus, UserTier

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Wallet user owning ramp transactions."""
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    phone_number = Column(String(20), unique=True, index=True)
    email = Column(String(255), unique=True, index=True)
    tier = Column(String(20), nullable=False, default=UserTier.TIER_1.value)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    ramp_transactions = relationship("RampTransaction", back_populates="user")


class RampTransaction(Base):
    """Fiat <-> crypto ramp transaction. Fee fields are written once at creation."""
    __tablename__ = "ramp_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=RampStatus.PENDING.value)
    payment_method = Column(String(20), nullable=False)
    fiat_currency = Column(String(3), nullable=False)
    fiat_amount = Column(Float, nullable=False)
    crypto_token = Column(String(10), nullable=False)
    chain = Column(String(20), nullable=False)
    crypto_amount = Column(Float, nullable=False)
    fee_percentage = Column(Float, nullable=False)
    fee_amount = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    payment_reference = Column(String(32), nullable=False, unique=True)
    processing_started_at = Column(DateTime(timezone=True))
    processing_time = Column(Float)  # minutes, set on completion
    failure_reason = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="ramp_transactions")

    __table_args__ = (
        Index("ix_ramp_transactions_user_type", "user_id", "type"),
        Index("ix_ramp_transactions_status", "status"),
        Index("ix_ramp_transactions_created_at", "created_at"),
    )

    def to_dict(self) -> dict:
        """Serialize with the camelCase field names used by the wallet frontend."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "type": self.type,
            "status": self.status,
            "paymentMethod": self.payment_method,
            "fiatCurrency": self.fiat_currency,
            "fiatAmount": self.fiat_amount,
            "cryptoToken": self.crypto_token,
            "chain": self.chain,
            "cryptoAmount": self.crypto_amount,
            "feePercentage": self.fee_percentage,
            "feeAmount": self.fee_amount,
            "totalAmount": self.total_amount,
            "paymentReference": self.payment_reference,
            "processingTime": self.processing_time,
            "failureReason": self.failure_reason,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
