"""Tests for the FSPIOP scheme client — headers, encoding, decoding, error mapping, idempotency."""

import json
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import pytest

from app.schemas.fspiop import format_amount
from app.services.scheme_client import (
    HttpSchemeClient,
    MockSchemeClient,
    content_type,
    get_scheme_client,
    set_scheme_client,
    synthesize_condition,
)
from app.transfers.errors import QuoteExpiredError, SchemeRejectedError, SchemeUnavailableError
from app.transfers.types import (
    Money,
    Party,
    PartyIdType,
    QuoteRequest,
    TransferInstruction,
    TransferState,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _quote_request(amount="500.00", currency="USD", extensions=()) -> QuoteRequest:
    return QuoteRequest(
        quote_id="q-1",
        transaction_id="t-1",
        payer=Party(PartyIdType.MSISDN, "+15551234567", "paymentswithoutborders", "Ada Obi"),
        payee=Party(PartyIdType.MSISDN, "+254712345678", "dfsp-eur"),
        amount=Money(Decimal(amount), currency),
        note="Cross-border payment via PaymentsWithoutBorders",
        extensions=extensions,
    )


def _instruction(clock, transfer_id=None, expires_in=300) -> TransferInstruction:
    return TransferInstruction(
        transfer_id=transfer_id or uuid.uuid4(),
        payer_fsp="paymentswithoutborders",
        payee_fsp="dfsp-eur",
        amount=Money(Decimal("500.00"), "USD"),
        condition="cond",
        ilp_packet="packet",
        expiration=clock.now + timedelta(seconds=expires_in),
    )


class Recorder:
    """httpx.MockTransport handler returning canned responses and keeping requests."""

    def __init__(self, response: httpx.Response | Exception):
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


@pytest.fixture
def make_http_client(engine_config, clock):
    def _make(response, production=False):
        recorder = Recorder(response)
        client = HttpSchemeClient(
            "http://hub.test",
            engine_config.source_fsp_id,
            engine_config.participants,
            production=production,
            transport=httpx.MockTransport(recorder),
            clock=clock,
        )
        return client, recorder

    return _make


QUOTE_RESPONSE = {
    "transferAmount": {"amount": "500", "currency": "USD"},
    "payeeReceiveAmount": {"amount": "403.75", "currency": "EUR"},
    "payeeFspFee": {"amount": "25", "currency": "USD"},
    "expiration": "2026-03-02T09:35:00Z",
    "condition": "HOr22-H3AfTDHrSkPjJtVPRdKouuMkDXTR4ejlQa8Ks",
    "ilpPacket": "AYIBgQAAAAAAAASwNGxldmVsb25lLmRmc3AxLm1lci45T2RTOF81MDdqUUZERmZlakgyOVc4bXFmNEpLMHlGTFGCAUBQU0svMS4wCk5vbmNlOiB1SXlweUYzY3pYSXBFdzVVc05TYWh3CkVuY3J5cHRpb246IG5vbmUKUGF5bWVudC1JZDogMTMyMzZhM2ItOGZhOC00MTYzLTg0NDctNGMzZWQzZGE5OGE3CgpDb250ZW50LUxlbmd0aDogMTM1CkNvbnRlbnQtVHlwZTogYXBwbGljYXRpb24vanNvbgpTZW5kZXItSWRlbnRpZmllcjogOTI4MDYzOTEKCiJ7XCJmZWVcIjowLFwidHJhbnNmZXJDb2RlXCI6XCJpbnZvaWNlXCIsXCJkZWJpdE5hbWVcIjpcImFsaWNlIGNvb3BlclwiLFwiY3JlZGl0TmFtZVwiOlwibWVyIGNoYW50XCIsXCJkZWJpdElkZW50aWZpZXJcIjpcIjkyODA2MzkxXCJ9IgA",
}


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------


class TestWireFormat:

    @pytest.mark.parametrize("value,expected", [
        ("500.00", "500"),
        ("403.75", "403.75"),
        ("0.50", "0.5"),
        ("1E+3", "1000"),
        ("0", "0"),
    ])
    def test_format_amount(self, value, expected):
        assert format_amount(Decimal(value)) == expected

    def test_headers(self, scheme):
        headers = scheme.headers("quotes", "dfsp-eur")
        assert headers["Content-Type"] == "application/vnd.interoperability.quotes+json;version=1.0"
        assert headers["Accept"] == content_type("quotes")
        assert headers["FSPIOP-Source"] == "paymentswithoutborders"
        assert headers["FSPIOP-Destination"] == "dfsp-eur"
        assert headers["Date"] == "Mon, 02 Mar 2026 09:30:00 GMT"

    def test_headers_without_destination(self, scheme):
        assert "FSPIOP-Destination" not in scheme.headers("transfers")


# ---------------------------------------------------------------------------
# HTTP client — quotes
# ---------------------------------------------------------------------------


class TestHttpQuote:

    @pytest.mark.asyncio
    async def test_posts_quote_and_decodes(self, make_http_client):
        client, recorder = make_http_client(httpx.Response(200, json=QUOTE_RESPONSE))
        request = _quote_request(extensions=(("exchangeRate", "0.85"), ("targetCurrency", "EUR")))

        quote = await client.request_quote(request, transfer_id=uuid.uuid4())

        sent = recorder.requests[0]
        body = json.loads(sent.content)
        assert sent.method == "POST"
        assert sent.url.path == "/quotes"
        assert sent.headers["FSPIOP-Destination"] == "dfsp-eur"
        assert body["quoteId"] == "q-1"
        assert body["amountType"] == "SEND"
        assert body["amount"] == {"amount": "500", "currency": "USD"}
        assert body["payee"]["partyIdInfo"]["partyIdType"] == "MSISDN"
        assert body["extensionList"]["extension"] == [
            {"key": "exchangeRate", "value": "0.85"},
            {"key": "targetCurrency", "value": "EUR"},
        ]

        assert quote.transfer_amount == Money(Decimal("500"), "USD")
        assert quote.payee_receive_amount == Money(Decimal("403.75"), "EUR")
        assert quote.condition == QUOTE_RESPONSE["condition"]
        assert quote.expiration == datetime(2026, 3, 2, 9, 35, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_missing_condition_synthesized_outside_production(self, make_http_client):
        body = {"transferAmount": {"amount": "500", "currency": "USD"}}
        client, _ = make_http_client(httpx.Response(200, json=body))
        transfer_id = uuid.uuid4()

        first = await client.request_quote(_quote_request(), transfer_id=transfer_id)
        second = await client.request_quote(_quote_request(), transfer_id=transfer_id)

        assert first.condition == synthesize_condition(transfer_id)
        assert first.condition == second.condition
        assert first.ilp_packet == second.ilp_packet
        assert first.expiration is None

    @pytest.mark.asyncio
    async def test_missing_condition_rejected_in_production(self, make_http_client):
        body = {"transferAmount": {"amount": "500", "currency": "USD"}}
        client, _ = make_http_client(httpx.Response(200, json=body), production=True)

        with pytest.raises(SchemeRejectedError) as exc_info:
            await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())
        assert exc_info.value.scheme_code == "MISSING_CONDITION"

    @pytest.mark.asyncio
    async def test_protocol_error_is_rejection(self, make_http_client):
        client, _ = make_http_client(httpx.Response(400, json={
            "errorInformation": {"errorCode": "3204", "errorDescription": "Party not found"},
        }))
        with pytest.raises(SchemeRejectedError) as exc_info:
            await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())
        assert exc_info.value.scheme_code == "3204"
        assert exc_info.value.description == "Party not found"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self, make_http_client):
        client, _ = make_http_client(httpx.Response(503))
        with pytest.raises(SchemeUnavailableError):
            await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
    ])
    async def test_network_failure_is_unavailable(self, make_http_client, error):
        client, _ = make_http_client(error)
        with pytest.raises(SchemeUnavailableError):
            await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_malformed_body_is_rejection(self, make_http_client):
        client, _ = make_http_client(httpx.Response(200, json={"transferAmount": {"amount": "lots"}}))
        with pytest.raises(SchemeRejectedError) as exc_info:
            await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())
        assert exc_info.value.scheme_code == "MALFORMED_RESPONSE"


# ---------------------------------------------------------------------------
# HTTP client — transfers and parties
# ---------------------------------------------------------------------------


class TestHttpTransfer:

    @pytest.mark.asyncio
    async def test_posts_transfer(self, make_http_client, clock):
        client, recorder = make_http_client(httpx.Response(200, json={
            "transferState": "COMMITTED",
            "completedTimestamp": "2026-03-02T09:30:01Z",
            "fulfilment": "fulfil",
        }))
        instruction = _instruction(clock)

        transfer = await client.execute_transfer(instruction)

        body = json.loads(recorder.requests[0].content)
        assert recorder.requests[0].headers["Content-Type"] == content_type("transfers")
        assert body["transferId"] == str(instruction.transfer_id)
        assert body["payerFsp"] == "paymentswithoutborders"
        assert body["payeeFsp"] == "dfsp-eur"
        assert body["amount"] == {"amount": "500", "currency": "USD"}
        assert body["condition"] == "cond"
        assert body["ilpPacket"] == "packet"
        assert transfer.state == TransferState.COMMITTED
        assert transfer.transfer_id == instruction.transfer_id

    @pytest.mark.asyncio
    async def test_expired_instruction_never_sent(self, make_http_client, clock):
        client, recorder = make_http_client(httpx.Response(200, json={"transferState": "COMMITTED"}))
        with pytest.raises(QuoteExpiredError):
            await client.execute_transfer(_instruction(clock, expires_in=0))
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_get_transfer(self, make_http_client):
        client, recorder = make_http_client(httpx.Response(200, json={"transferState": "RESERVED"}))
        transfer_id = uuid.uuid4()

        transfer = await client.get_transfer(transfer_id)

        assert recorder.requests[0].method == "GET"
        assert recorder.requests[0].url.path == f"/transfers/{transfer_id}"
        assert transfer.state == TransferState.RESERVED
        assert not transfer.state.is_final

    @pytest.mark.asyncio
    async def test_lookup_party(self, make_http_client):
        client, recorder = make_http_client(httpx.Response(200, json={
            "party": {
                "partyIdInfo": {"partyIdType": "MSISDN", "partyIdentifier": "254712345678", "fspId": "dfsp-kes"},
                "personalInfo": {"complexName": {"firstName": "Wanjiru", "lastName": "Kamau"}},
            }
        }))

        party = await client.lookup_party(PartyIdType.MSISDN, "254712345678")

        assert recorder.requests[0].url.path == "/parties/MSISDN/254712345678"
        assert party.fsp_id == "dfsp-kes"
        assert party.name == "Wanjiru Kamau"


# ---------------------------------------------------------------------------
# Mock client
# ---------------------------------------------------------------------------


class TestMockSchemeClient:

    @pytest.mark.asyncio
    async def test_quote_applies_payee_fee_and_rate(self, scheme):
        request = _quote_request(extensions=(("exchangeRate", "0.85"), ("targetCurrency", "EUR")))
        quote = await scheme.request_quote(request, transfer_id=uuid.uuid4())

        assert quote.transfer_amount == Money(Decimal("500"), "USD")
        assert quote.payee_fsp_fee == Money(Decimal("25"), "USD")
        assert quote.payee_receive_amount == Money(Decimal("403.75"), "EUR")
        assert quote.expiration is None
        assert scheme.sent[0][1] == "/quotes"

    @pytest.mark.asyncio
    async def test_quote_ttl(self, engine_config, clock):
        client = MockSchemeClient(
            engine_config.source_fsp_id, engine_config.participants, quote_ttl_seconds=60, clock=clock,
        )
        quote = await client.request_quote(_quote_request(), transfer_id=uuid.uuid4())
        assert quote.expiration == clock.now + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_same_transfer_twice_is_one_movement(self, scheme, clock):
        """Resending the same instruction yields the same terminal transfer."""
        instruction = _instruction(clock)

        first = await scheme.execute_transfer(instruction)
        second = await scheme.execute_transfer(instruction)

        assert first == second
        assert first.state == TransferState.COMMITTED
        assert scheme.transfer_count == 1

    @pytest.mark.asyncio
    async def test_same_id_different_body_rejected(self, scheme, clock):
        transfer_id = uuid.uuid4()
        await scheme.execute_transfer(_instruction(clock, transfer_id))

        changed = _instruction(clock, transfer_id, expires_in=600)
        with pytest.raises(SchemeRejectedError) as exc_info:
            await scheme.execute_transfer(changed)
        assert exc_info.value.scheme_code == "3106"
        assert scheme.transfer_count == 1

    @pytest.mark.asyncio
    async def test_configured_transfer_state(self, engine_config, clock):
        client = MockSchemeClient(
            engine_config.source_fsp_id, engine_config.participants,
            transfer_state=TransferState.RESERVED, clock=clock,
        )
        transfer = await client.execute_transfer(_instruction(clock))
        assert transfer.state == TransferState.RESERVED

    @pytest.mark.asyncio
    async def test_get_unknown_transfer(self, scheme):
        with pytest.raises(SchemeRejectedError) as exc_info:
            await scheme.get_transfer(uuid.uuid4())
        assert exc_info.value.scheme_code == "3208"

    @pytest.mark.asyncio
    async def test_lookup_party(self, scheme):
        party = await scheme.lookup_party(PartyIdType.EMAIL, "john@example.com")
        assert party.identifier == "john@example.com"
        assert party.name == "John Smith"


class TestClientFactory:

    def test_override(self, scheme):
        set_scheme_client(scheme)
        assert get_scheme_client() is scheme

    def test_mock_by_default(self):
        set_scheme_client(None)
        assert isinstance(get_scheme_client(), MockSchemeClient)
