"""
Pydantic schemas for transfer initiation and status.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.config import settings
from app.transfers.types import TransferHistory, TransferResult


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TransferCreateRequest(BaseModel):
    """Schema for sending money abroad. The sender is the authenticated principal."""
    receiver_id: str = Field(..., min_length=1, max_length=128, examples=["user-7781"])
    receiver_name: str | None = Field(None, max_length=200, examples=["Amaka Obi"])
    receiver_phone: str | None = Field(None, pattern=r"^\+?\d{7,15}$", examples=["+2348012345678"])
    receiver_country: str | None = Field(None, pattern=r"^[A-Za-z]{2}$", examples=["NG"])
    amount: Decimal = Field(..., gt=0, decimal_places=2, examples=[Decimal("100.00")])
    source_currency: str = Field(..., pattern=r"^[A-Za-z]{3}$", examples=["USD"])
    target_currency: str = Field(..., pattern=r"^[A-Za-z]{3}$", examples=["NGN"])
    description: str | None = Field(None, max_length=500)
    transfer_id: UUID | None = Field(
        None, description="Only when retrying a transfer whose outcome at the hub is unknown",
    )

    @field_validator("source_currency", "target_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.upper()
        if code not in settings.SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency {code}")
        return code

    @field_validator("receiver_country")
    @classmethod
    def upper_country(cls, v: str | None) -> str | None:
        return v.upper() if v else v


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class FeeBreakdownResponse(BaseModel):
    service_fee: Decimal
    exchange_fee: Decimal
    network_fee: Decimal
    total: Decimal
    currency: str | None = None


class ExchangeRateResponse(BaseModel):
    from_currency: str
    to_currency: str
    rate: Decimal
    timestamp: datetime
    provider: str


class QuoteSummary(BaseModel):
    quote_id: str
    transfer_amount: Decimal
    payee_receive_amount: Decimal | None = None
    payee_fsp_fee: Decimal | None = None
    expiration: datetime | None = None


class TransferResultResponse(BaseModel):
    """Outcome of one orchestration run."""
    transfer_id: UUID
    status: str
    amount: Decimal
    source_currency: str
    target_currency: str
    converted_amount: Decimal | None = None
    exchange_rate: ExchangeRateResponse | None = None
    fees: FeeBreakdownResponse
    total_debit: Decimal
    quote: QuoteSummary | None = None
    transfer_state: str | None = None
    failed_step: str | None = None
    reason: str | None = None
    estimated_delivery: str
    created_at: datetime

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferResultResponse":
        request = result.request
        rate = result.exchange_rate
        quote = result.quote
        return cls(
            transfer_id=result.transfer_id,
            status=result.status.value,
            amount=request.amount,
            source_currency=request.source_currency,
            target_currency=request.target_currency,
            converted_amount=result.converted_amount.amount if result.converted_amount else None,
            exchange_rate=ExchangeRateResponse(
                from_currency=rate.from_currency,
                to_currency=rate.to_currency,
                rate=rate.rate,
                timestamp=rate.timestamp,
                provider=rate.provider,
            ) if rate else None,
            fees=FeeBreakdownResponse(
                service_fee=result.fees.service_fee,
                exchange_fee=result.fees.exchange_fee,
                network_fee=result.fees.network_fee,
                total=result.fees.total,
                currency=result.fees.currency,
            ),
            total_debit=request.amount + result.fees.total,
            quote=QuoteSummary(
                quote_id=quote.quote_id,
                transfer_amount=quote.transfer_amount.amount,
                payee_receive_amount=(
                    quote.payee_receive_amount.amount if quote.payee_receive_amount else None
                ),
                payee_fsp_fee=quote.payee_fsp_fee.amount if quote.payee_fsp_fee else None,
                expiration=quote.expiration,
            ) if quote else None,
            transfer_state=result.transfer.state.value if result.transfer else None,
            failed_step=result.failed_step.value if result.failed_step else None,
            reason=result.reason,
            estimated_delivery=result.estimated_delivery,
            created_at=result.created_at,
        )


class ObservationResponse(BaseModel):
    status: str
    observed_at: datetime
    source: str
    detail: str | None = None


class TransferStatusResponse(BaseModel):
    """Stored result plus its status history."""
    transfer_id: UUID
    current_status: str
    result: TransferResultResponse
    observations: list[ObservationResponse]

    @classmethod
    def from_history(cls, history: TransferHistory) -> "TransferStatusResponse":
        return cls(
            transfer_id=history.result.transfer_id,
            current_status=history.current_status.value,
            result=TransferResultResponse.from_result(history.result),
            observations=[
                ObservationResponse(
                    status=o.status.value,
                    observed_at=o.observed_at,
                    source=o.source,
                    detail=o.detail,
                )
                for o in history.observations
            ],
        )


class ErrorDetail(BaseModel):
    """Body of ``detail`` for a failed transfer."""
    code: str
    message: str
    transfer_id: UUID
    step: str
    retryable: bool
    reuse_transfer_id: bool = False
