"""
Pydantic models for FSPIOP (Mojaloop) wire bodies.

Field names are snake_case in Python and camelCase on the wire.
Amounts travel as decimal strings, never as JSON numbers.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from app.transfers.types import PartyIdType, TransferState


def format_amount(value: Decimal) -> str:
    """Render an amount in FSPIOP form: plain digits, no exponent, no trailing zeros."""
    text = format(value.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


class FspiopModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MoneyBody(FspiopModel):
    amount: str
    currency: str

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: str) -> str:
        try:
            value = Decimal(v)
        except (InvalidOperation, TypeError):
            raise ValueError(f"Amount {v!r} is not a decimal string")
        if not value.is_finite() or value < 0:
            raise ValueError(f"Amount {v!r} must be a non-negative decimal")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError(f"Currency {v!r} is not an ISO 4217 code")
        return v.upper()

    @property
    def value(self) -> Decimal:
        return Decimal(self.amount)


class PartyIdInfoBody(FspiopModel):
    party_id_type: PartyIdType
    party_identifier: str
    fsp_id: str | None = None


class PartyComplexNameBody(FspiopModel):
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None


class PartyPersonalInfoBody(FspiopModel):
    complex_name: PartyComplexNameBody | None = None
    date_of_birth: str | None = None


class PartyBody(FspiopModel):
    party_id_info: PartyIdInfoBody
    name: str | None = None
    merchant_classification_code: str | None = None
    personal_info: PartyPersonalInfoBody | None = None


class TransactionTypeBody(FspiopModel):
    scenario: str = "TRANSFER"
    initiator: str = "PAYER"
    initiator_type: str = "CONSUMER"


class ExtensionBody(FspiopModel):
    key: str
    value: str


class ExtensionListBody(FspiopModel):
    extension: list[ExtensionBody]


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------


class QuotePostBody(FspiopModel):
    quote_id: str
    transaction_id: str
    payer: PartyBody
    payee: PartyBody
    amount_type: str
    amount: MoneyBody
    transaction_type: TransactionTypeBody
    note: str | None = None
    extension_list: ExtensionListBody | None = None


class QuoteResponseBody(FspiopModel):
    transfer_amount: MoneyBody
    payee_receive_amount: MoneyBody | None = None
    payee_fsp_fee: MoneyBody | None = None
    expiration: datetime | None = None
    condition: str | None = None
    ilp_packet: str | None = None


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


class TransferPostBody(FspiopModel):
    transfer_id: str
    payer_fsp: str
    payee_fsp: str
    amount: MoneyBody
    ilp_packet: str
    condition: str
    expiration: datetime


class TransferResponseBody(FspiopModel):
    transfer_state: TransferState
    completed_timestamp: datetime | None = None
    fulfilment: str | None = None


# ---------------------------------------------------------------------------
# Parties / errors
# ---------------------------------------------------------------------------


class PartyResponseBody(FspiopModel):
    party: PartyBody


class ErrorInformationBody(FspiopModel):
    error_code: str
    error_description: str = ""


class ErrorResponseBody(FspiopModel):
    error_information: ErrorInformationBody
