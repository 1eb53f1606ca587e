"""
Request bodies of the ramp API.

Enum-valued fields are plain strings here; the service parses them
case-insensitively and reports unknown values as ``INVALID_INPUT``.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRampTransactionRequest(CamelModel):
    """Body of ``POST /api/ramp/transaction``."""

    type: str = Field(min_length=1, description="on_ramp or off_ramp")
    payment_method: str = Field(min_length=1, description="bank_transfer, card, mobile_money or mpesa")
    fiat_currency: str = Field(min_length=1, max_length=3)
    fiat_amount: float = Field(allow_inf_nan=False)
    crypto_token: str = Field(min_length=1)
    chain: Optional[str] = Field(default=None, description="Preferred settlement chain")


class CalculateSavingsRequest(CamelModel):
    """Body of ``POST /api/ramp/calculate-savings``."""

    amount: float = Field(gt=0, allow_inf_nan=False)
    current_tier: str = Field(min_length=1)
    next_tier: str = Field(min_length=1)
