"""
Pydantic schemas for scheme party lookup.
"""

from pydantic import BaseModel, Field

from app.transfers.types import PartyIdType


class PartyLookupRequest(BaseModel):
    id_type: PartyIdType = Field(PartyIdType.MSISDN, examples=["MSISDN"])
    identifier: str = Field(..., min_length=1, max_length=128, examples=["+254712345678"])


class PartyResponse(BaseModel):
    id_type: PartyIdType
    identifier: str
    fsp_id: str | None = None
    name: str | None = None
