"""
Transfer endpoints — send money abroad and read back a transfer's status.

Create flow:
  1. Authenticated principal becomes the sender
  2. Orchestrator runs compliance → rate → quote → transfer
  3. 201 for a final outcome, 202 for PENDING / MANUAL_REVIEW_PENDING
  4. Failures map to 403 / 409 / 502 / 503 with a stable error body

A resubmitted ``transfer_id`` must belong to the sender (404 otherwise) and
name a run the hub never answered (409 otherwise).
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.api.deps import get_current_principal, get_orchestrator, get_repository
from app.core.security import Principal
from app.schemas.transfer import (
    ErrorDetail,
    TransferCreateRequest,
    TransferResultResponse,
    TransferStatusResponse,
)
from app.transfers.errors import (
    OrchestrationError,
    TransferNotFoundError,
    TransferRetryConflictError,
)
from app.transfers.orchestrator import TransferOrchestrator
from app.transfers.repository import TransferRepository
from app.transfers.types import TransferRequest, TransferStatus

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    "DENIED": status.HTTP_403_FORBIDDEN,
    "QUOTE_EXPIRED": status.HTTP_409_CONFLICT,
    "SCHEME_REJECTED": status.HTTP_502_BAD_GATEWAY,
    "RATE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "SCHEME_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}

ACCEPTED_STATUSES = (TransferStatus.PENDING, TransferStatus.MANUAL_REVIEW_PENDING)


def error_response(exc: OrchestrationError) -> HTTPException:
    """Translate an orchestration failure; dependency error text stays in the logs."""
    detail = ErrorDetail(
        code=exc.code,
        message=exc.user_message,
        transfer_id=exc.transfer_id,
        step=exc.step.value,
        retryable=exc.retryable,
        reuse_transfer_id=exc.reuse_transfer_id,
    )
    return HTTPException(
        status_code=ERROR_STATUS.get(exc.code, status.HTTP_502_BAD_GATEWAY),
        detail=detail.model_dump(mode="json"),
    )


@router.post(
    "",
    response_model=TransferResultResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transfer(
    payload: TransferCreateRequest,
    response: Response,
    principal: Principal = Depends(get_current_principal),
    orchestrator: TransferOrchestrator = Depends(get_orchestrator),
):
    """
    Send money to a receiver in another currency.

    The call returns once the hub has answered the transfer, or as soon
    as compliance holds the transfer for manual review.
    """
    try:
        request = TransferRequest(
            sender_id=principal.user_id,
            receiver_id=payload.receiver_id,
            amount=payload.amount,
            source_currency=payload.source_currency,
            target_currency=payload.target_currency,
            sender_name=principal.name,
            sender_phone=principal.phone,
            receiver_name=payload.receiver_name,
            receiver_phone=payload.receiver_phone,
            receiver_country=payload.receiver_country,
            description=payload.description,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    try:
        result = await orchestrator.initiate_transfer(request, transfer_id=payload.transfer_id)
    except OrchestrationError as exc:
        raise error_response(exc)
    except TransferNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transfer not found",
        )
    except TransferRetryConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": str(exc), "transfer_id": str(payload.transfer_id)},
        )

    if result.status in ACCEPTED_STATUSES:
        response.status_code = status.HTTP_202_ACCEPTED

    logger.info(
        "Transfer %s for user %s finished with %s",
        result.transfer_id, principal.user_id, result.status.value,
    )
    return TransferResultResponse.from_result(result)


@router.get("/{transfer_id}", response_model=TransferStatusResponse)
async def get_transfer(
    transfer_id: UUID,
    principal: Principal = Depends(get_current_principal),
    repository: TransferRepository = Depends(get_repository),
):
    """Stored result, status history and current status of one transfer."""
    history = await repository.get(transfer_id)
    if history is None or history.result.request.sender_id != principal.user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transfer not found",
        )
    return TransferStatusResponse.from_history(history)
