"""
Value types shared by the transfer engine.

Every type here is a frozen dataclass: a ``TransferResult`` handed to a
caller is never edited afterwards, and later status changes are recorded
as separate ``StatusObservation`` values.

Money is always ``Decimal``; binary floats never enter the engine.
"""

from __future__ import annotations

import enum
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0000000001")

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TransferState(str, enum.Enum):
    """Transfer states as reported by the scheme hub."""
    RECEIVED = "RECEIVED"
    RESERVED = "RESERVED"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"

    @property
    def is_final(self) -> bool:
        return self in (TransferState.COMMITTED, TransferState.ABORTED)


class TransferStatus(str, enum.Enum):
    """Externally visible outcome of one orchestration run."""
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"
    PENDING = "PENDING"
    DENIED = "DENIED"
    MANUAL_REVIEW_PENDING = "MANUAL_REVIEW_PENDING"
    RATE_UNAVAILABLE = "RATE_UNAVAILABLE"
    SCHEME_FAILED = "SCHEME_FAILED"

    @classmethod
    def from_transfer_state(cls, state: TransferState) -> "TransferStatus":
        if state == TransferState.COMMITTED:
            return cls.COMMITTED
        if state == TransferState.ABORTED:
            return cls.ABORTED
        return cls.PENDING


class OrchestrationState(str, enum.Enum):
    """Pipeline states, in the order a successful run passes through them."""
    VALIDATING = "validating"
    COMPLIANCE_CHECKED = "compliance_checked"
    RATE_RESOLVED = "rate_resolved"
    QUOTED = "quoted"
    TRANSFERRED = "transferred"
    COMPLETED = "completed"


class PartyIdType(str, enum.Enum):
    MSISDN = "MSISDN"
    EMAIL = "EMAIL"
    PERSONAL_ID = "PERSONAL_ID"
    BUSINESS = "BUSINESS"
    DEVICE = "DEVICE"
    ACCOUNT_ID = "ACCOUNT_ID"
    IBAN = "IBAN"
    ALIAS = "ALIAS"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Money:
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class TransferRequest:
    """A validated "send money abroad" request from an authenticated sender."""
    sender_id: str
    receiver_id: str
    amount: Decimal
    source_currency: str
    target_currency: str
    sender_name: str | None = None
    sender_phone: str | None = None
    receiver_name: str | None = None
    receiver_phone: str | None = None
    receiver_country: str | None = None
    description: str | None = None

    def __post_init__(self):
        if not isinstance(self.amount, Decimal) or self.amount <= 0:
            raise ValueError(f"Transfer amount must be a positive Decimal, got {self.amount!r}")
        for code in (self.source_currency, self.target_currency):
            if not _CURRENCY_RE.match(code or ""):
                raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")

    @property
    def has_conversion(self) -> bool:
        return self.source_currency != self.target_currency


# ---------------------------------------------------------------------------
# Rates and fees
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExchangeRate:
    """Units of ``to_currency`` per one unit of ``from_currency``."""
    from_currency: str
    to_currency: str
    rate: Decimal
    timestamp: datetime
    provider: str

    @classmethod
    def direct(cls, currency: str, timestamp: datetime) -> "ExchangeRate":
        """Identity rate for a same-currency pair."""
        return cls(currency, currency, Decimal("1"), timestamp, "direct")

    def convert(self, amount: Decimal) -> Decimal:
        return quantize_money(amount * self.rate)


@dataclass(frozen=True)
class FeeBreakdown:
    service_fee: Decimal
    exchange_fee: Decimal
    network_fee: Decimal
    currency: str | None = None

    @property
    def total(self) -> Decimal:
        return self.service_fee + self.exchange_fee + self.network_fee


# ---------------------------------------------------------------------------
# Scheme messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Party:
    id_type: PartyIdType
    identifier: str
    fsp_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class QuoteRequest:
    quote_id: str
    transaction_id: str
    payer: Party
    payee: Party
    amount: Money
    note: str
    extensions: tuple[tuple[str, str], ...] = ()
    amount_type: str = "SEND"


@dataclass(frozen=True)
class Quote:
    """Scheme quote; consumed at most once by the transfer step."""
    quote_id: str
    transaction_id: str
    transfer_amount: Money
    condition: str
    ilp_packet: str
    expiration: datetime | None = None
    payee_receive_amount: Money | None = None
    payee_fsp_fee: Money | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expiration is not None and now >= self.expiration


@dataclass(frozen=True)
class TransferInstruction:
    """The transfer message sent to the hub (keyed by transfer id)."""
    transfer_id: uuid.UUID
    payer_fsp: str
    payee_fsp: str
    amount: Money
    condition: str
    ilp_packet: str
    expiration: datetime


@dataclass(frozen=True)
class Transfer:
    transfer_id: uuid.UUID
    state: TransferState
    completed_at: datetime | None = None
    fulfilment: str | None = None


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferResult:
    transfer_id: uuid.UUID
    status: TransferStatus
    request: TransferRequest
    fees: FeeBreakdown
    estimated_delivery: str
    created_at: datetime
    exchange_rate: ExchangeRate | None = None
    converted_amount: Money | None = None
    quote: Quote | None = None
    transfer: Transfer | None = None
    failed_step: OrchestrationState | None = None
    error_code: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class StatusObservation:
    transfer_id: uuid.UUID
    status: TransferStatus
    observed_at: datetime
    source: str
    detail: str | None = None


@dataclass(frozen=True)
class TransferHistory:
    """
    Latest stored result for a transfer id plus its status observations.

    Observations are in append order; the newest ``observed_at`` wins and
    ties go to the one appended last.
    """
    result: TransferResult
    observations: tuple[StatusObservation, ...] = field(default_factory=tuple)

    @property
    def current_status(self) -> TransferStatus:
        if self.observations:
            _, latest = max(enumerate(self.observations), key=lambda p: (p[1].observed_at, p[0]))
            return latest.status
        return self.result.status
