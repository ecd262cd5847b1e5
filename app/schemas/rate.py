"""
Pydantic schemas for exchange rates, fee calculation and currencies.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.schemas.transfer import ExchangeRateResponse, FeeBreakdownResponse

__all__ = [
    "CurrencyInfo",
    "ExchangeRateResponse",
    "FeeCalculationRequest",
    "FeeCalculationResponse",
]


class FeeCalculationRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2, examples=[Decimal("500.00")])
    from_currency: str = Field(..., pattern=r"^[A-Za-z]{3}$", examples=["USD"])
    to_currency: str = Field(..., pattern=r"^[A-Za-z]{3}$", examples=["EUR"])

    @field_validator("from_currency", "to_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.upper()
        if code not in settings.SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency {code}")
        return code


class FeeCalculationResponse(BaseModel):
    """Fee preview: what the sender pays and what the receiver gets."""
    amount: Decimal
    from_currency: str
    to_currency: str
    fees: FeeBreakdownResponse
    exchange_rate: ExchangeRateResponse
    converted_amount: Decimal
    total_debit: Decimal
    estimated_delivery: str


class CurrencyInfo(BaseModel):
    code: str
    name: str
    symbol: str
    fsp_id: str
