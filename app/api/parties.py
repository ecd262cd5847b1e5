"""
Party lookup — resolve a receiver identifier to its scheme participant.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_current_principal, get_scheme
from app.core.security import Principal
from app.schemas.party import PartyLookupRequest, PartyResponse
from app.services.scheme_client import ERROR_PARTY_NOT_FOUND, SchemeClient
from app.transfers.errors import SchemeRejectedError, SchemeUnavailableError

logger = logging.getLogger(__name__)

router = APIRouter()


def _mask(identifier: str) -> str:
    if len(identifier) <= 4:
        return "****"
    return "*" * (len(identifier) - 4) + identifier[-4:]


@router.post("/lookup", response_model=PartyResponse)
async def lookup_party(
    payload: PartyLookupRequest,
    principal: Principal = Depends(get_current_principal),
    scheme: SchemeClient = Depends(get_scheme),
):
    """Look up who owns an identifier (phone number, account, ...) on the scheme."""
    logger.info(
        "Party lookup by %s: %s %s",
        principal.user_id, payload.id_type.value, _mask(payload.identifier),
    )
    try:
        party = await scheme.lookup_party(payload.id_type, payload.identifier)
    except SchemeUnavailableError as exc:
        logger.warning("Party lookup failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The payment network is temporarily unavailable. Please try again later.",
        )
    except SchemeRejectedError as exc:
        if exc.scheme_code == ERROR_PARTY_NOT_FOUND:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Party not found",
            )
        logger.warning("Party lookup rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="The payment network rejected the lookup.",
        )

    return PartyResponse(
        id_type=party.id_type,
        identifier=party.identifier,
        fsp_id=party.fsp_id,
        name=party.name,
    )
