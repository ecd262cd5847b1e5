"""
Scheme client — FSPIOP party lookup, quote and transfer calls to the hub.

Architecture:
  - SchemeClient (protocol) defines the interface used by the orchestrator
  - HttpSchemeClient calls the Mojaloop hub over HTTP
  - MockSchemeClient answers with canned FSPIOP bodies for development
  - MOJALOOP_MOCK=true (default) selects the mock client

Every call carries the FSPIOP correlation headers: ``FSPIOP-Source`` (our
participant id), ``FSPIOP-Destination`` (resolved from the currency via the
participant directory) and ``Date``. Both implementations decode responses
through the same code path, so a quote without a condition or ILP packet is
handled identically: synthesized from the transfer id outside production,
rejected in production.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from email.utils import format_datetime
from typing import Callable, Protocol

import httpx
from pydantic import ValidationError

from app.config import settings
from app.schemas.fspiop import (
    ErrorResponseBody,
    ExtensionBody,
    ExtensionListBody,
    MoneyBody,
    PartyBody,
    PartyIdInfoBody,
    PartyResponseBody,
    QuotePostBody,
    QuoteResponseBody,
    TransactionTypeBody,
    TransferPostBody,
    TransferResponseBody,
    format_amount,
)
from app.transfers.config import ParticipantDirectory, get_engine_config
from app.transfers.errors import (
    QuoteExpiredError,
    SchemeRejectedError,
    SchemeUnavailableError,
)
from app.transfers.types import (
    Money,
    Party,
    PartyIdType,
    Quote,
    QuoteRequest,
    Transfer,
    TransferInstruction,
    TransferState,
)

logger = logging.getLogger(__name__)

API_VERSION = "1.0"

# Mojaloop error code for a resent request whose body differs from the original
ERROR_MODIFIED_REQUEST = "3106"
ERROR_PARTY_NOT_FOUND = "3204"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_type(resource: str) -> str:
    return f"application/vnd.interoperability.{resource}+json;version={API_VERSION}"


def synthesize_condition(transfer_id: uuid.UUID) -> str:
    """Deterministic ILP-style condition (base64url SHA-256) derived from the transfer id."""
    digest = hashlib.sha256(f"condition:{transfer_id}".encode()).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def synthesize_ilp_packet(quote_request: QuoteRequest, condition: str) -> str:
    packet = {
        "amount": format_amount(quote_request.amount.amount),
        "currency": quote_request.amount.currency,
        "destination": quote_request.payee.identifier,
        "executionCondition": condition,
    }
    return base64.urlsafe_b64encode(json.dumps(packet, sort_keys=True).encode()).decode()


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class SchemeClient(Protocol):
    async def lookup_party(self, id_type: PartyIdType, identifier: str) -> Party: ...

    async def request_quote(self, quote_request: QuoteRequest, *, transfer_id: uuid.UUID) -> Quote: ...

    async def execute_transfer(self, instruction: TransferInstruction) -> Transfer: ...

    async def get_transfer(self, transfer_id: uuid.UUID) -> Transfer: ...


# ---------------------------------------------------------------------------
# Shared encoding / decoding
# ---------------------------------------------------------------------------


class BaseSchemeClient:
    """Header construction and FSPIOP body encoding shared by both clients."""

    def __init__(
        self,
        source_fsp_id: str,
        participants: ParticipantDirectory,
        *,
        production: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.source_fsp_id = source_fsp_id
        self.participants = participants
        self.production = production
        self.clock = clock

    def headers(self, resource: str, destination: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": content_type(resource),
            "Accept": content_type(resource),
            "Date": format_datetime(self.clock(), usegmt=True),
            "FSPIOP-Source": self.source_fsp_id,
        }
        if destination:
            headers["FSPIOP-Destination"] = destination
        return headers

    # --- Encoding ---

    @staticmethod
    def _party_body(party: Party) -> PartyBody:
        return PartyBody(
            party_id_info=PartyIdInfoBody(
                party_id_type=party.id_type,
                party_identifier=party.identifier,
                fsp_id=party.fsp_id,
            ),
            name=party.name,
        )

    def encode_quote(self, quote_request: QuoteRequest) -> dict:
        extensions = None
        if quote_request.extensions:
            extensions = ExtensionListBody(
                extension=[ExtensionBody(key=k, value=v) for k, v in quote_request.extensions]
            )
        return QuotePostBody(
            quote_id=quote_request.quote_id,
            transaction_id=quote_request.transaction_id,
            payer=self._party_body(quote_request.payer),
            payee=self._party_body(quote_request.payee),
            amount_type=quote_request.amount_type,
            amount=MoneyBody(
                amount=format_amount(quote_request.amount.amount),
                currency=quote_request.amount.currency,
            ),
            transaction_type=TransactionTypeBody(),
            note=quote_request.note,
            extension_list=extensions,
        ).to_wire()

    @staticmethod
    def encode_transfer(instruction: TransferInstruction) -> dict:
        return TransferPostBody(
            transfer_id=str(instruction.transfer_id),
            payer_fsp=instruction.payer_fsp,
            payee_fsp=instruction.payee_fsp,
            amount=MoneyBody(
                amount=format_amount(instruction.amount.amount),
                currency=instruction.amount.currency,
            ),
            ilp_packet=instruction.ilp_packet,
            condition=instruction.condition,
            expiration=instruction.expiration,
        ).to_wire()

    # --- Decoding ---

    def decode_quote(self, data: dict, quote_request: QuoteRequest, transfer_id: uuid.UUID) -> Quote:
        try:
            body = QuoteResponseBody.model_validate(data)
        except ValidationError as exc:
            raise SchemeRejectedError("MALFORMED_RESPONSE", f"Invalid quote response: {exc}") from exc

        condition = body.condition
        ilp_packet = body.ilp_packet
        if not condition or not ilp_packet:
            if self.production:
                raise SchemeRejectedError(
                    "MISSING_CONDITION",
                    f"Quote {quote_request.quote_id} has no condition/ILP packet",
                )
            condition = condition or synthesize_condition(transfer_id)
            ilp_packet = ilp_packet or synthesize_ilp_packet(quote_request, condition)
            logger.info(
                "Synthesized condition for quote %s (transfer %s, non-production)",
                quote_request.quote_id, transfer_id,
            )

        expiration = body.expiration
        if expiration is not None and expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)

        return Quote(
            quote_id=quote_request.quote_id,
            transaction_id=quote_request.transaction_id,
            transfer_amount=Money(body.transfer_amount.value, body.transfer_amount.currency),
            condition=condition,
            ilp_packet=ilp_packet,
            expiration=expiration,
            payee_receive_amount=(
                Money(body.payee_receive_amount.value, body.payee_receive_amount.currency)
                if body.payee_receive_amount else None
            ),
            payee_fsp_fee=(
                Money(body.payee_fsp_fee.value, body.payee_fsp_fee.currency)
                if body.payee_fsp_fee else None
            ),
        )

    @staticmethod
    def decode_transfer(data: dict, transfer_id: uuid.UUID) -> Transfer:
        try:
            body = TransferResponseBody.model_validate(data)
        except ValidationError as exc:
            raise SchemeRejectedError("MALFORMED_RESPONSE", f"Invalid transfer response: {exc}") from exc
        return Transfer(
            transfer_id=transfer_id,
            state=body.transfer_state,
            completed_at=body.completed_timestamp,
            fulfilment=body.fulfilment,
        )

    @staticmethod
    def decode_party(data: dict) -> Party:
        try:
            body = PartyResponseBody.model_validate(data)
        except ValidationError as exc:
            raise SchemeRejectedError("MALFORMED_RESPONSE", f"Invalid party response: {exc}") from exc
        info = body.party.party_id_info
        name = body.party.name
        if not name and body.party.personal_info and body.party.personal_info.complex_name:
            cn = body.party.personal_info.complex_name
            name = " ".join(p for p in (cn.first_name, cn.middle_name, cn.last_name) if p) or None
        return Party(
            id_type=info.party_id_type,
            identifier=info.party_identifier,
            fsp_id=info.fsp_id,
            name=name,
        )

    def check_expiration(self, instruction: TransferInstruction) -> None:
        if self.clock() >= instruction.expiration:
            raise QuoteExpiredError(
                f"Transfer {instruction.transfer_id} expired at {instruction.expiration.isoformat()}"
            )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


class HttpSchemeClient(BaseSchemeClient):
    """Talks FSPIOP to a Mojaloop hub (or a scheme adapter in front of it)."""

    def __init__(
        self,
        base_url: str,
        source_fsp_id: str,
        participants: ParticipantDirectory,
        *,
        production: bool = False,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(source_fsp_id, participants, production=production, clock=clock)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _send(self, method: str, path: str, headers: dict, body: dict | None = None) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport,
            ) as client:
                resp = await client.request(method, path, headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise SchemeUnavailableError(f"{method} {path} timed out after {self.timeout}s") from exc
        except httpx.RequestError as exc:
            raise SchemeUnavailableError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code >= 500:
            raise SchemeUnavailableError(f"{method} {path} returned {resp.status_code}")
        if resp.status_code >= 400:
            raise self._rejection(resp)

        try:
            return resp.json()
        except ValueError as exc:
            raise SchemeRejectedError("MALFORMED_RESPONSE", f"{method} {path} returned non-JSON body") from exc

    @staticmethod
    def _rejection(resp: httpx.Response) -> SchemeRejectedError:
        try:
            info = ErrorResponseBody.model_validate(resp.json()).error_information
            return SchemeRejectedError(info.error_code, info.error_description)
        except (ValueError, ValidationError):
            return SchemeRejectedError(str(resp.status_code), resp.text[:200])

    async def lookup_party(self, id_type: PartyIdType, identifier: str) -> Party:
        data = await self._send(
            "GET", f"/parties/{id_type.value}/{identifier}", self.headers("parties"),
        )
        return self.decode_party(data)

    async def request_quote(self, quote_request: QuoteRequest, *, transfer_id: uuid.UUID) -> Quote:
        logger.info("Requesting quote %s for transfer %s", quote_request.quote_id, transfer_id)
        data = await self._send(
            "POST", "/quotes",
            self.headers("quotes", quote_request.payee.fsp_id),
            self.encode_quote(quote_request),
        )
        return self.decode_quote(data, quote_request, transfer_id)

    async def execute_transfer(self, instruction: TransferInstruction) -> Transfer:
        self.check_expiration(instruction)
        logger.info("Executing transfer %s", instruction.transfer_id)
        data = await self._send(
            "POST", "/transfers",
            self.headers("transfers", instruction.payee_fsp),
            self.encode_transfer(instruction),
        )
        return self.decode_transfer(data, instruction.transfer_id)

    async def get_transfer(self, transfer_id: uuid.UUID) -> Transfer:
        data = await self._send("GET", f"/transfers/{transfer_id}", self.headers("transfers"))
        return self.decode_transfer(data, transfer_id)


# ---------------------------------------------------------------------------
# Mock client (development / testing)
# ---------------------------------------------------------------------------


class MockSchemeClient(BaseSchemeClient):
    """
    Fixed FSPIOP responses without a hub.

    Transfers are idempotent per transfer id: resending the same body returns
    the stored transfer, a different body under the same id is rejected with
    FSPIOP error 3106. Every request is appended to ``sent`` as
    ``(method, path, headers, body)``.
    """

    def __init__(
        self,
        source_fsp_id: str,
        participants: ParticipantDirectory,
        *,
        payee_fee_rate: Decimal = Decimal("0.05"),
        quote_ttl_seconds: int | None = None,
        transfer_state: TransferState = TransferState.COMMITTED,
        production: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(source_fsp_id, participants, production=production, clock=clock)
        self.payee_fee_rate = payee_fee_rate
        self.quote_ttl_seconds = quote_ttl_seconds
        self.transfer_state = transfer_state
        self.sent: list[tuple[str, str, dict, dict | None]] = []
        self._transfers: dict[uuid.UUID, tuple[dict, dict]] = {}

    async def lookup_party(self, id_type: PartyIdType, identifier: str) -> Party:
        self.sent.append(("GET", f"/parties/{id_type.value}/{identifier}", self.headers("parties"), None))
        return self.decode_party({
            "party": {
                "partyIdInfo": {
                    "partyIdType": id_type.value,
                    "partyIdentifier": identifier,
                    "fspId": "mobilebank",
                },
                "merchantClassificationCode": "4321",
                "personalInfo": {
                    "complexName": {"firstName": "John", "lastName": "Smith"},
                    "dateOfBirth": "1980-01-01",
                },
            }
        })

    async def request_quote(self, quote_request: QuoteRequest, *, transfer_id: uuid.UUID) -> Quote:
        body = self.encode_quote(quote_request)
        self.sent.append(("POST", "/quotes", self.headers("quotes", quote_request.payee.fsp_id), body))

        extensions = dict(quote_request.extensions)
        rate = Decimal(extensions.get("exchangeRate", "1"))
        target_currency = extensions.get("targetCurrency", quote_request.amount.currency)
        amount = quote_request.amount.amount
        payee_fee = amount * self.payee_fee_rate

        response = {
            "transferAmount": {
                "amount": format_amount(amount),
                "currency": quote_request.amount.currency,
            },
            "payeeReceiveAmount": {
                "amount": format_amount(((amount - payee_fee) * rate).quantize(Decimal("0.01"))),
                "currency": target_currency,
            },
            "payeeFspFee": {
                "amount": format_amount(payee_fee.quantize(Decimal("0.01"))),
                "currency": quote_request.amount.currency,
            },
        }
        if self.quote_ttl_seconds is not None:
            expiration = self.clock().timestamp() + self.quote_ttl_seconds
            response["expiration"] = datetime.fromtimestamp(expiration, tz=timezone.utc).isoformat()
        return self.decode_quote(response, quote_request, transfer_id)

    async def execute_transfer(self, instruction: TransferInstruction) -> Transfer:
        self.check_expiration(instruction)
        body = self.encode_transfer(instruction)
        self.sent.append(("POST", "/transfers", self.headers("transfers", instruction.payee_fsp), body))

        stored = self._transfers.get(instruction.transfer_id)
        if stored is not None:
            stored_body, stored_response = stored
            if stored_body != body:
                raise SchemeRejectedError(
                    ERROR_MODIFIED_REQUEST,
                    f"Transfer {instruction.transfer_id} resent with a different body",
                )
            return self.decode_transfer(stored_response, instruction.transfer_id)

        response = {
            "transferState": self.transfer_state.value,
            "completedTimestamp": self.clock().isoformat(),
            "fulfilment": base64.urlsafe_b64encode(
                hashlib.sha256(f"fulfilment:{instruction.transfer_id}".encode()).digest()
            ).rstrip(b"=").decode(),
        }
        self._transfers[instruction.transfer_id] = (body, response)
        return self.decode_transfer(response, instruction.transfer_id)

    async def get_transfer(self, transfer_id: uuid.UUID) -> Transfer:
        self.sent.append(("GET", f"/transfers/{transfer_id}", self.headers("transfers"), None))
        stored = self._transfers.get(transfer_id)
        if stored is None:
            raise SchemeRejectedError("3208", f"Transfer {transfer_id} not found")
        return self.decode_transfer(stored[1], transfer_id)

    @property
    def transfer_count(self) -> int:
        """Number of distinct money movements recorded."""
        return len(self._transfers)


# ---------------------------------------------------------------------------
# Factory — selects client based on config
# ---------------------------------------------------------------------------

_client: SchemeClient | None = None


def get_scheme_client() -> SchemeClient:
    """Return the configured scheme client (cached after first call)."""
    global _client
    if _client is not None:
        return _client

    config = get_engine_config()
    if settings.MOJALOOP_MOCK:
        logger.info("Using MockSchemeClient (no hub calls)")
        _client = MockSchemeClient(
            config.source_fsp_id, config.participants, production=config.production,
        )
    else:
        logger.info("Using HttpSchemeClient against %s", settings.MOJALOOP_HUB_ENDPOINT)
        _client = HttpSchemeClient(
            settings.MOJALOOP_HUB_ENDPOINT,
            config.source_fsp_id,
            config.participants,
            production=config.production,
            timeout=settings.MOJALOOP_TIMEOUT_SECONDS,
        )
    return _client


def set_scheme_client(client: SchemeClient | None) -> None:
    """Override the scheme client (used in tests)."""
    global _client
    _client = client
