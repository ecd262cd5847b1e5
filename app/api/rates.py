"""
Exchange rate, fee preview and currency endpoints.

Side-effect free and unauthenticated; they never reach the scheme hub.
Rates are cached in Redis with configurable TTL.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import get_orchestrator
from app.config import settings
from app.schemas.rate import (
    CurrencyInfo,
    ExchangeRateResponse,
    FeeCalculationRequest,
    FeeCalculationResponse,
)
from app.schemas.transfer import FeeBreakdownResponse
from app.transfers.config import get_engine_config
from app.transfers.delivery import currency_name, currency_symbol, estimate_delivery
from app.transfers.errors import RateUnavailableError
from app.transfers.orchestrator import TransferOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _check_supported(*codes: str) -> None:
    for code in codes:
        if code not in settings.SUPPORTED_CURRENCIES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported currency {code}",
            )


def _rate_unavailable(exc: RateUnavailableError) -> HTTPException:
    logger.warning("Rate lookup failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"code": exc.code, "message": "No exchange rate is available for this currency pair right now."},
    )


@router.get("", response_model=ExchangeRateResponse)
async def get_rate(
    from_currency: str = Query(..., alias="from", examples=["USD"]),
    to_currency: str = Query(..., alias="to", examples=["EUR"]),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """Current rate for one direction, with its provider and fetch time."""
    source, target = from_currency.upper(), to_currency.upper()
    _check_supported(source, target)

    try:
        rate = await orchestrator.get_exchange_rate(source, target)
    except RateUnavailableError as exc:
        raise _rate_unavailable(exc)

    return ExchangeRateResponse(
        from_currency=rate.from_currency,
        to_currency=rate.to_currency,
        rate=rate.rate,
        timestamp=rate.timestamp,
        provider=rate.provider,
    )


@router.post("/fees", response_model=FeeCalculationResponse)
async def calculate_fees(
    payload: FeeCalculationRequest,
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """
    Fee preview for an amount and corridor.

    Fees are charged in the source currency on the amount entered; the
    converted amount uses the same rate a transfer would use right now.
    """
    fees = orchestrator.calculate_fees(payload.amount, payload.from_currency, payload.to_currency)
    try:
        rate = await orchestrator.get_exchange_rate(payload.from_currency, payload.to_currency)
    except RateUnavailableError as exc:
        raise _rate_unavailable(exc)

    return FeeCalculationResponse(
        amount=payload.amount,
        from_currency=payload.from_currency,
        to_currency=payload.to_currency,
        fees=FeeBreakdownResponse(
            service_fee=fees.service_fee,
            exchange_fee=fees.exchange_fee,
            network_fee=fees.network_fee,
            total=fees.total,
            currency=fees.currency,
        ),
        exchange_rate=ExchangeRateResponse(
            from_currency=rate.from_currency,
            to_currency=rate.to_currency,
            rate=rate.rate,
            timestamp=rate.timestamp,
            provider=rate.provider,
        ),
        converted_amount=rate.convert(payload.amount),
        total_debit=payload.amount + fees.total,
        estimated_delivery=estimate_delivery(payload.from_currency, payload.to_currency),
    )


@router.get("/currencies", response_model=list[CurrencyInfo])
async def list_currencies():
    """Supported currencies with display metadata and scheme participant."""
    participants = get_engine_config().participants
    return [
        CurrencyInfo(
            code=code,
            name=currency_name(code),
            symbol=currency_symbol(code),
            fsp_id=participants.resolve(code),
        )
        for code in settings.SUPPORTED_CURRENCIES
    ]
