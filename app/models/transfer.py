"""
Transfer record models — persisted orchestration outcomes.

- ``TransferRecord``: one row per orchestration run, written once and never
  updated. A retried transfer id produces a second row.
- ``TransferObservation``: append-only status history for a transfer id
  (the initial outcome, then hub status updates from the sync task).
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Identity,
    Numeric,
    String,
    Text,
    Enum as SAEnum,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.transfers.errors import InvariantViolation
from app.transfers.types import (
    ExchangeRate,
    FeeBreakdown,
    Money,
    OrchestrationState,
    Quote,
    StatusObservation,
    Transfer,
    TransferRequest,
    TransferResult,
    TransferState,
    TransferStatus,
)

# ---------------------------------------------------------------------------
# Quote (de)serialisation — stored as an opaque JSON document
# ---------------------------------------------------------------------------


def _money_to_json(money: Money | None) -> dict | None:
    if money is None:
        return None
    return {"amount": str(money.amount), "currency": money.currency}


def _money_from_json(data: dict | None) -> Money | None:
    if data is None:
        return None
    return Money(Decimal(data["amount"]), data["currency"])


def quote_to_json(quote: Quote) -> dict:
    return {
        "quote_id": quote.quote_id,
        "transaction_id": quote.transaction_id,
        "transfer_amount": _money_to_json(quote.transfer_amount),
        "condition": quote.condition,
        "ilp_packet": quote.ilp_packet,
        "expiration": quote.expiration.isoformat() if quote.expiration else None,
        "payee_receive_amount": _money_to_json(quote.payee_receive_amount),
        "payee_fsp_fee": _money_to_json(quote.payee_fsp_fee),
    }


def quote_from_json(data: dict) -> Quote:
    return Quote(
        quote_id=data["quote_id"],
        transaction_id=data["transaction_id"],
        transfer_amount=_money_from_json(data["transfer_amount"]),
        condition=data["condition"],
        ilp_packet=data["ilp_packet"],
        expiration=datetime.fromisoformat(data["expiration"]) if data.get("expiration") else None,
        payee_receive_amount=_money_from_json(data.get("payee_receive_amount")),
        payee_fsp_fee=_money_from_json(data.get("payee_fsp_fee")),
    )


# ---------------------------------------------------------------------------
# TransferRecord
# ---------------------------------------------------------------------------


class TransferRecord(Base):
    __tablename__ = "transfer_records"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transfer_records_amount_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), index=True, nullable=False,
    )
    status: Mapped[TransferStatus] = mapped_column(
        SAEnum(TransferStatus, name="transferstatus"), nullable=False, index=True,
    )

    # Request
    sender_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_name: Mapped[str | None] = mapped_column(String(200))
    sender_phone: Mapped[str | None] = mapped_column(String(32))
    receiver_name: Mapped[str | None] = mapped_column(String(200))
    receiver_phone: Mapped[str | None] = mapped_column(String(32))
    receiver_country: Mapped[str | None] = mapped_column(String(2))
    description: Mapped[str | None] = mapped_column(Text)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    source_currency: Mapped[str] = mapped_column(String(3), nullable=False)
    target_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Fees (source currency)
    service_fee: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    exchange_fee: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    network_fee: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)

    # Conversion
    exchange_rate: Mapped[Decimal | None] = mapped_column(Numeric(precision=24, scale=10))
    rate_provider: Mapped[str | None] = mapped_column(String(50))
    rate_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    converted_amount: Mapped[Decimal | None] = mapped_column(Numeric(precision=18, scale=2))

    # Scheme
    quote: Mapped[dict | None] = mapped_column(JSONB)
    transfer_state: Mapped[TransferState | None] = mapped_column(
        SAEnum(TransferState, name="transferstate"), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    fulfilment: Mapped[str | None] = mapped_column(String(128))

    # Failure
    failed_step: Mapped[OrchestrationState | None] = mapped_column(
        SAEnum(
            OrchestrationState,
            name="orchestrationstate",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=True,
    )
    error_code: Mapped[str | None] = mapped_column(String(50))
    reason: Mapped[str | None] = mapped_column(Text)

    estimated_delivery: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @classmethod
    def from_result(cls, result: TransferResult) -> "TransferRecord":
        request = result.request
        rate = result.exchange_rate
        transfer = result.transfer
        return cls(
            transfer_id=result.transfer_id,
            status=result.status,
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            sender_name=request.sender_name,
            sender_phone=request.sender_phone,
            receiver_name=request.receiver_name,
            receiver_phone=request.receiver_phone,
            receiver_country=request.receiver_country,
            description=request.description,
            amount=request.amount,
            source_currency=request.source_currency,
            target_currency=request.target_currency,
            service_fee=result.fees.service_fee,
            exchange_fee=result.fees.exchange_fee,
            network_fee=result.fees.network_fee,
            exchange_rate=rate.rate if rate else None,
            rate_provider=rate.provider if rate else None,
            rate_timestamp=rate.timestamp if rate else None,
            converted_amount=result.converted_amount.amount if result.converted_amount else None,
            quote=quote_to_json(result.quote) if result.quote else None,
            transfer_state=transfer.state if transfer else None,
            completed_at=transfer.completed_at if transfer else None,
            fulfilment=transfer.fulfilment if transfer else None,
            failed_step=result.failed_step,
            error_code=result.error_code,
            reason=result.reason,
            estimated_delivery=result.estimated_delivery,
            created_at=result.created_at,
        )

    def to_result(self) -> TransferResult:
        request = TransferRequest(
            sender_id=self.sender_id,
            receiver_id=self.receiver_id,
            amount=Decimal(self.amount),
            source_currency=self.source_currency,
            target_currency=self.target_currency,
            sender_name=self.sender_name,
            sender_phone=self.sender_phone,
            receiver_name=self.receiver_name,
            receiver_phone=self.receiver_phone,
            receiver_country=self.receiver_country,
            description=self.description,
        )
        exchange_rate = None
        if self.exchange_rate is not None:
            exchange_rate = ExchangeRate(
                self.source_currency, self.target_currency,
                Decimal(self.exchange_rate), self.rate_timestamp, self.rate_provider,
            )
        transfer = None
        if self.transfer_state is not None:
            transfer = Transfer(
                self.transfer_id, self.transfer_state, self.completed_at, self.fulfilment,
            )
        return TransferResult(
            transfer_id=self.transfer_id,
            status=self.status,
            request=request,
            fees=FeeBreakdown(
                Decimal(self.service_fee), Decimal(self.exchange_fee), Decimal(self.network_fee),
                currency=self.source_currency,
            ),
            estimated_delivery=self.estimated_delivery,
            created_at=self.created_at,
            exchange_rate=exchange_rate,
            converted_amount=(
                Money(Decimal(self.converted_amount), self.target_currency)
                if self.converted_amount is not None else None
            ),
            quote=quote_from_json(self.quote) if self.quote else None,
            transfer=transfer,
            failed_step=self.failed_step,
            error_code=self.error_code,
            reason=self.reason,
        )

    def __repr__(self) -> str:
        return (
            f"<TransferRecord {self.transfer_id} "
            f"{self.amount} {self.source_currency}->{self.target_currency} "
            f"status={self.status.value if self.status else 'N/A'}>"
        )


# ---------------------------------------------------------------------------
# TransferObservation
# ---------------------------------------------------------------------------


class TransferObservation(Base):
    __tablename__ = "transfer_observations"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    transfer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), index=True, nullable=False,
    )
    status: Mapped[TransferStatus] = mapped_column(
        SAEnum(TransferStatus, name="transferstatus"), nullable=False,
    )
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    detail: Mapped[str | None] = mapped_column(Text)
    observed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    # Append order, breaks ties between equal observed_at values
    seq: Mapped[int] = mapped_column(BigInteger, Identity(), nullable=False, unique=True)

    @classmethod
    def from_observation(cls, observation: StatusObservation) -> "TransferObservation":
        return cls(
            transfer_id=observation.transfer_id,
            status=observation.status,
            source=observation.source,
            detail=observation.detail,
            observed_at=observation.observed_at,
        )

    def to_observation(self) -> StatusObservation:
        return StatusObservation(
            transfer_id=self.transfer_id,
            status=self.status,
            observed_at=self.observed_at,
            source=self.source,
            detail=self.detail,
        )


# ---------------------------------------------------------------------------
# Defaults and write-once guards
# ---------------------------------------------------------------------------


@event.listens_for(TransferRecord, "init")
def _set_record_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "created_at" not in kwargs:
        target.created_at = datetime.now(timezone.utc)


@event.listens_for(TransferObservation, "init")
def _set_observation_defaults(target, args, kwargs):
    if "id" not in kwargs:
        target.id = uuid.uuid4()
    if "observed_at" not in kwargs:
        target.observed_at = datetime.now(timezone.utc)


@event.listens_for(TransferRecord, "before_update")
def _reject_record_update(mapper, connection, target):
    raise InvariantViolation(
        f"TransferRecord {target.id} for transfer {target.transfer_id} is immutable; "
        "record status changes as a TransferObservation"
    )


@event.listens_for(TransferObservation, "before_update")
def _reject_observation_update(mapper, connection, target):
    raise InvariantViolation(f"TransferObservation {target.id} is append-only")
