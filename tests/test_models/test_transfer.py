"""Tests for the transfer record models — defaults, round-trips, write-once guards."""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.models.transfer import (
    TransferObservation,
    TransferRecord,
    _reject_observation_update,
    _reject_record_update,
    quote_from_json,
    quote_to_json,
)
from app.transfers.errors import InvariantViolation
from app.transfers.types import (
    ExchangeRate,
    FeeBreakdown,
    Money,
    OrchestrationState,
    Quote,
    StatusObservation,
    Transfer,
    TransferResult,
    TransferState,
    TransferStatus,
)

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quote():
    return Quote(
        quote_id="q-1",
        transaction_id="t-1",
        transfer_amount=Money(Decimal("500"), "USD"),
        condition="cond",
        ilp_packet="packet",
        expiration=NOW + timedelta(minutes=5),
        payee_receive_amount=Money(Decimal("403.75"), "EUR"),
        payee_fsp_fee=Money(Decimal("25"), "USD"),
    )


@pytest.fixture
def committed_result(make_request, quote):
    transfer_id = uuid.uuid4()
    return TransferResult(
        transfer_id=transfer_id,
        status=TransferStatus.COMMITTED,
        request=make_request(amount=Decimal("500.00"), target_currency="EUR", description="Rent"),
        fees=FeeBreakdown(Decimal("5.00"), Decimal("2.50"), Decimal("0.50"), "USD"),
        estimated_delivery="1-2 minutes",
        created_at=NOW,
        exchange_rate=ExchangeRate("USD", "EUR", Decimal("0.85"), NOW, "mock"),
        converted_amount=Money(Decimal("425.00"), "EUR"),
        quote=quote,
        transfer=Transfer(transfer_id, TransferState.COMMITTED, NOW, "fulfil"),
    )


# ---------------------------------------------------------------------------
# TransferRecord
# ---------------------------------------------------------------------------


class TestTransferRecord:

    def test_defaults_on_init(self, committed_result):
        """Surrogate id is set at construction; each run gets its own row id."""
        first = TransferRecord.from_result(committed_result)
        second = TransferRecord.from_result(committed_result)

        assert first.id is not None
        assert first.id != second.id
        assert first.transfer_id == second.transfer_id == committed_result.transfer_id
        assert first.created_at == NOW

    def test_columns(self, committed_result):
        record = TransferRecord.from_result(committed_result)

        assert record.status == TransferStatus.COMMITTED
        assert record.sender_id == "user-1001"
        assert record.amount == Decimal("500.00")
        assert record.exchange_rate == Decimal("0.85")
        assert record.rate_provider == "mock"
        assert record.converted_amount == Decimal("425.00")
        assert record.transfer_state == TransferState.COMMITTED
        assert record.failed_step is None
        assert record.quote["condition"] == "cond"

    def test_round_trip(self, committed_result):
        assert TransferRecord.from_result(committed_result).to_result() == committed_result

    def test_round_trip_failed_run(self, make_request):
        result = TransferResult(
            transfer_id=uuid.uuid4(),
            status=TransferStatus.DENIED,
            request=make_request(amount=Decimal("50000.00")),
            fees=FeeBreakdown(Decimal("500.00"), Decimal("0.00"), Decimal("0.50"), "USD"),
            estimated_delivery="Instant",
            created_at=NOW,
            failed_step=OrchestrationState.COMPLIANCE_CHECKED,
            error_code="AMOUNT_ABOVE_MAXIMUM",
            reason="Transaction amount exceeds maximum limit",
        )
        restored = TransferRecord.from_result(result).to_result()

        assert restored == result
        assert restored.exchange_rate is None
        assert restored.quote is None

    def test_update_rejected(self, committed_result):
        record = TransferRecord.from_result(committed_result)
        with pytest.raises(InvariantViolation):
            _reject_record_update(None, None, record)

    def test_repr(self, committed_result):
        text = repr(TransferRecord.from_result(committed_result))
        assert "USD->EUR" in text
        assert "COMMITTED" in text


# ---------------------------------------------------------------------------
# Quote JSON
# ---------------------------------------------------------------------------


class TestQuoteJson:

    def test_amounts_stored_as_strings(self, quote):
        data = quote_to_json(quote)
        assert data["transfer_amount"] == {"amount": "500", "currency": "USD"}
        assert data["expiration"] == "2026-03-02T09:35:00+00:00"

    def test_optional_fields(self, quote):
        bare = Quote("q-2", "t-2", Money(Decimal("1"), "USD"), "c", "p")
        assert quote_from_json(quote_to_json(bare)) == bare


# ---------------------------------------------------------------------------
# TransferObservation
# ---------------------------------------------------------------------------


class TestTransferObservation:

    def test_from_observation(self):
        observation = StatusObservation(uuid.uuid4(), TransferStatus.COMMITTED, NOW, "hub_sync", "hub state COMMITTED")
        row = TransferObservation.from_observation(observation)

        assert row.id is not None
        assert row.to_observation() == observation

    def test_observed_at_defaults_to_now(self):
        row = TransferObservation(
            transfer_id=uuid.uuid4(), status=TransferStatus.PENDING, source="orchestrator",
        )
        assert row.observed_at.tzinfo is not None

    def test_update_rejected(self):
        row = TransferObservation(
            transfer_id=uuid.uuid4(), status=TransferStatus.PENDING, source="orchestrator",
        )
        with pytest.raises(InvariantViolation):
            _reject_observation_update(None, None, row)
