"""
Transfer orchestrator — drives one cross-border transfer end to end.

Pipeline (strictly sequential, one run per transfer id):

    VALIDATING ─► COMPLIANCE_CHECKED ─► RATE_RESOLVED ─► QUOTED ─► TRANSFERRED ─► COMPLETED
        │                │                    │            │             │
        │          DENIED / MANUAL_REVIEW   RATE_       SCHEME_       SCHEME_
        │                                  UNAVAILABLE   FAILED        FAILED
        └─ fees computed up front (pure), so every outcome carries them

``initiate_transfer`` returns a ``TransferResult`` for COMMITTED, ABORTED,
PENDING and MANUAL_REVIEW_PENDING, and raises ``OrchestrationError`` for
DENIED, RATE_UNAVAILABLE and SCHEME_FAILED. Every outcome is persisted
through the repository before it is returned or raised.

The orchestrator never retries internally. A caller retrying after a
scheme-unavailable failure at the transfer step passes the transfer id back
(the hub treats it as the idempotency key): the run resumes at the transfer
step with the stored quote, so the hub receives a byte-identical instruction.
Any other retry uses a new id.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Awaitable, Callable

from app.config import settings
from app.services.compliance_service import (
    ComplianceDecision,
    ComplianceGate,
    get_compliance_provider,
)
from app.services.fee_service import FeeCalculator
from app.services.rate_service import ExchangeRateResolver, build_rate_resolver
from app.services.scheme_client import SchemeClient, get_scheme_client
from app.transfers.config import EngineConfig, get_engine_config
from app.transfers.delivery import estimate_delivery
from app.transfers.errors import (
    InvariantViolation,
    OrchestrationError,
    QuoteExpiredError,
    RateUnavailableError,
    SchemeError,
    SchemeUnavailableError,
    TransferEngineError,
    TransferNotFoundError,
    TransferRetryConflictError,
)
from app.transfers.repository import TransferRepository, get_transfer_repository
from app.transfers.types import (
    ExchangeRate,
    FeeBreakdown,
    Money,
    OrchestrationState,
    Party,
    PartyIdType,
    Quote,
    QuoteRequest,
    TransferInstruction,
    TransferRequest,
    TransferResult,
    TransferStatus,
)

logger = logging.getLogger(__name__)

QUOTE_NOTE = f"Cross-border payment via {settings.APP_NAME}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Run:
    """Per-run working state; never shared between runs."""
    transfer_id: uuid.UUID
    request: TransferRequest
    fees: FeeBreakdown
    estimated_delivery: str
    created_at: datetime
    started: float
    deadline: float | None = None
    exchange_rate: ExchangeRate | None = None
    converted_amount: Money | None = None
    quote: Quote | None = None

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started) * 1000)

    def result(self, status: TransferStatus, **kwargs) -> TransferResult:
        return TransferResult(
            transfer_id=self.transfer_id,
            status=status,
            request=self.request,
            fees=self.fees,
            estimated_delivery=self.estimated_delivery,
            created_at=self.created_at,
            exchange_rate=self.exchange_rate,
            converted_amount=self.converted_amount,
            quote=self.quote,
            **kwargs,
        )


class TransferOrchestrator:
    """Compliance → rate → quote → transfer → result, for one request at a time."""

    def __init__(
        self,
        compliance_gate: ComplianceGate,
        rate_resolver: ExchangeRateResolver,
        scheme_client: SchemeClient,
        repository: TransferRepository,
        fee_calculator: FeeCalculator | None = None,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.config = config or get_engine_config()
        self.compliance_gate = compliance_gate
        self.rate_resolver = rate_resolver
        self.scheme_client = scheme_client
        self.repository = repository
        self.fee_calculator = fee_calculator or FeeCalculator(self.config.fees)
        self.clock = clock

    # ── Read-only helpers ────────────────────────────────────────────────

    async def get_exchange_rate(self, from_currency: str, to_currency: str) -> ExchangeRate:
        """Resolve a rate without running a transfer. Raises RateUnavailableError."""
        return await self.rate_resolver.resolve(from_currency, to_currency)

    def calculate_fees(self, amount: Decimal, from_currency: str, to_currency: str) -> FeeBreakdown:
        return self.fee_calculator.compute(
            amount, from_currency.upper() != to_currency.upper(), from_currency.upper(),
        )

    # ── Public entry point ───────────────────────────────────────────────

    async def initiate_transfer(
        self,
        request: TransferRequest,
        *,
        transfer_id: uuid.UUID | None = None,
        timeout: float | None = None,
    ) -> TransferResult:
        """
        Run the full pipeline for ``request``.

        Args:
            request: Validated transfer request.
            transfer_id: Id of a stored run whose transfer step failed with
                         the hub unreachable; the run resumes from its
                         stored quote. Omit for a new transfer.
            timeout: Overall budget in seconds for the I/O steps.

        Raises:
            OrchestrationError: DENIED, RATE_UNAVAILABLE or SCHEME_FAILED.
            TransferNotFoundError: ``transfer_id`` is unknown for this sender.
            TransferRetryConflictError: the stored run cannot be resumed.
            InvariantViolation: an upstream contract was broken.
        """
        if transfer_id is not None:
            return await self._resume_transfer(request, transfer_id, timeout)

        run = _Run(
            transfer_id=uuid.uuid4(),
            request=request,
            fees=self.fee_calculator.compute(
                request.amount, request.has_conversion, request.source_currency,
            ),
            estimated_delivery=estimate_delivery(request.source_currency, request.target_currency),
            created_at=self.clock(),
            started=time.monotonic(),
            deadline=self._deadline(timeout),
        )
        self._log_step(
            run, OrchestrationState.VALIDATING,
            "%s %s -> %s, fees %s",
            request.amount, request.source_currency, request.target_currency, run.fees.total,
        )

        verdict_result = await self._check_compliance(run)
        if verdict_result is not None:
            return verdict_result

        await self._resolve_rate(run)
        await self._request_quote(run)
        return await self._transfer_quoted(run)

    async def _resume_transfer(
        self, request: TransferRequest, transfer_id: uuid.UUID, timeout: float | None,
    ) -> TransferResult:
        """Resend the stored instruction of a run the hub never answered."""
        history = await self.repository.get(transfer_id)
        if history is None or history.result.request.sender_id != request.sender_id:
            raise TransferNotFoundError(f"Transfer {transfer_id} not found")

        stored = history.result
        if stored.status in (TransferStatus.COMMITTED, TransferStatus.ABORTED, TransferStatus.PENDING):
            logger.info(
                "Transfer %s already answered by the hub (%s), returning stored result",
                transfer_id, stored.status.value,
            )
            return stored
        if not (
            stored.status == TransferStatus.SCHEME_FAILED
            and stored.failed_step == OrchestrationState.TRANSFERRED
            and stored.error_code == SchemeUnavailableError.code
        ):
            raise TransferRetryConflictError(
                f"Transfer {transfer_id} ended with {stored.status.value} "
                f"({stored.error_code}); start a new transfer"
            )
        if stored.request != request:
            raise TransferRetryConflictError(
                f"Transfer {transfer_id} resubmitted with different details"
            )

        run = _Run(
            transfer_id=transfer_id,
            request=stored.request,
            fees=stored.fees,
            estimated_delivery=stored.estimated_delivery,
            created_at=self.clock(),
            started=time.monotonic(),
            deadline=self._deadline(timeout),
            exchange_rate=stored.exchange_rate,
            converted_amount=stored.converted_amount,
            quote=stored.quote,
        )
        self._log_step(run, OrchestrationState.QUOTED, "resuming with stored quote %s", stored.quote.quote_id)
        return await self._transfer_quoted(run)

    async def _transfer_quoted(self, run: _Run) -> TransferResult:
        try:
            return await self._execute_transfer(run)
        except asyncio.CancelledError:
            logger.warning(
                "Transfer %s cancelled after quoting: abandoned quote %s (expires %s)",
                run.transfer_id, run.quote.quote_id,
                run.quote.expiration.isoformat() if run.quote.expiration else "n/a",
                extra={"transfer_id": str(run.transfer_id), "step": "abandoned_quote",
                       "elapsed_ms": run.elapsed_ms},
            )
            raise

    # ── Steps ────────────────────────────────────────────────────────────

    async def _check_compliance(self, run: _Run) -> TransferResult | None:
        verdict = await self.compliance_gate.check(run.request)

        if verdict.decision == ComplianceDecision.DENY:
            await self._fail(
                run, OrchestrationState.COMPLIANCE_CHECKED, TransferStatus.DENIED,
                "DENIED", verdict.reason, error_code=verdict.code,
            )

        if verdict.decision == ComplianceDecision.MANUAL_REVIEW:
            result = run.result(
                TransferStatus.MANUAL_REVIEW_PENDING,
                failed_step=OrchestrationState.COMPLIANCE_CHECKED,
                error_code=verdict.code,
                reason=verdict.reason,
            )
            await self.repository.save(result)
            self._log_step(
                run, OrchestrationState.COMPLIANCE_CHECKED,
                "manual review required (%s)", verdict.code,
            )
            return result

        self._log_step(run, OrchestrationState.COMPLIANCE_CHECKED, "allowed")
        return None

    async def _resolve_rate(self, run: _Run) -> None:
        request = run.request
        if not request.has_conversion:
            run.exchange_rate = ExchangeRate.direct(request.source_currency, self.clock())
        else:
            try:
                run.exchange_rate = await self._bounded(
                    run,
                    lambda: self.rate_resolver.resolve(request.source_currency, request.target_currency),
                    RateUnavailableError,
                )
            except RateUnavailableError as exc:
                await self._fail(
                    run, OrchestrationState.RATE_RESOLVED, TransferStatus.RATE_UNAVAILABLE,
                    exc.code, str(exc), cause=exc,
                )

        run.converted_amount = Money(
            run.exchange_rate.convert(request.amount), request.target_currency,
        )
        self._log_step(
            run, OrchestrationState.RATE_RESOLVED,
            "rate %s (%s), converted %s %s",
            run.exchange_rate.rate, run.exchange_rate.provider,
            run.converted_amount.amount, run.converted_amount.currency,
        )

    async def _request_quote(self, run: _Run) -> None:
        quote_request = self._build_quote_request(run)
        try:
            run.quote = await self._bounded(
                run,
                lambda: self.scheme_client.request_quote(quote_request, transfer_id=run.transfer_id),
                SchemeUnavailableError,
            )
        except SchemeError as exc:
            await self._fail(
                run, OrchestrationState.QUOTED, TransferStatus.SCHEME_FAILED,
                exc.code, str(exc), cause=exc,
            )
        if run.quote.expiration is None:
            # Stored with the run; a resumed transfer resends this exact expiration
            run.quote = replace(
                run.quote,
                expiration=self.clock() + timedelta(seconds=self.config.transfer_expiration_seconds),
            )
        self._log_step(
            run, OrchestrationState.QUOTED,
            "quote %s, expires %s",
            run.quote.quote_id,
            run.quote.expiration.isoformat() if run.quote.expiration else "n/a",
        )

    async def _execute_transfer(self, run: _Run) -> TransferResult:
        quote = run.quote
        now = self.clock()
        if quote.is_expired(now):
            exc = QuoteExpiredError(
                f"Quote {quote.quote_id} expired at {quote.expiration.isoformat()}"
            )
            await self._fail(
                run, OrchestrationState.TRANSFERRED, TransferStatus.SCHEME_FAILED,
                exc.code, str(exc), cause=exc,
            )

        instruction = self._build_instruction(run)
        try:
            transfer = await self._bounded(
                run, lambda: self.scheme_client.execute_transfer(instruction), SchemeUnavailableError,
            )
        except SchemeError as exc:
            await self._fail(
                run, OrchestrationState.TRANSFERRED, TransferStatus.SCHEME_FAILED,
                exc.code, str(exc), cause=exc,
            )
        self._log_step(run, OrchestrationState.TRANSFERRED, "hub state %s", transfer.state.value)

        result = run.result(TransferStatus.from_transfer_state(transfer.state), transfer=transfer)
        await self.repository.save(result)
        self._log_step(run, OrchestrationState.COMPLETED, "status %s", result.status.value)
        return result

    # ── Message builders ─────────────────────────────────────────────────

    def _build_quote_request(self, run: _Run) -> QuoteRequest:
        request = run.request
        payer = Party(
            id_type=PartyIdType.MSISDN if request.sender_phone else PartyIdType.ACCOUNT_ID,
            identifier=request.sender_phone or request.sender_id,
            fsp_id=self.config.source_fsp_id,
            name=request.sender_name,
        )
        payee = Party(
            id_type=PartyIdType.MSISDN if request.receiver_phone else PartyIdType.ACCOUNT_ID,
            identifier=request.receiver_phone or request.receiver_id,
            fsp_id=self.config.participants.resolve(request.target_currency),
            name=request.receiver_name,
        )
        return QuoteRequest(
            quote_id=str(uuid.uuid4()),
            transaction_id=str(uuid.uuid4()),
            payer=payer,
            payee=payee,
            amount=Money(request.amount, request.source_currency),
            note=request.description or QUOTE_NOTE,
            extensions=(
                ("exchangeRate", str(run.exchange_rate.rate)),
                ("targetCurrency", request.target_currency),
            ),
        )

    def _build_instruction(self, run: _Run) -> TransferInstruction:
        quote = run.quote
        if quote.expiration is None:
            raise InvariantViolation(f"Quote {quote.quote_id} reached the transfer step without an expiration")
        return TransferInstruction(
            transfer_id=run.transfer_id,
            payer_fsp=self.config.source_fsp_id,
            payee_fsp=self.config.participants.resolve(run.request.target_currency),
            amount=quote.transfer_amount,
            condition=quote.condition,
            ilp_packet=quote.ilp_packet,
            expiration=quote.expiration,
        )

    # ── Plumbing ─────────────────────────────────────────────────────────

    @staticmethod
    def _deadline(timeout: float | None) -> float | None:
        if timeout is None:
            return None
        return asyncio.get_running_loop().time() + timeout

    async def _bounded(
        self,
        run: _Run,
        call: Callable[[], Awaitable],
        on_timeout: type[TransferEngineError],
    ):
        """Await ``call()`` within what is left of the run's budget."""
        if run.deadline is None:
            return await call()
        remaining = run.deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise on_timeout(f"Run budget exhausted for transfer {run.transfer_id}")
        try:
            return await asyncio.wait_for(call(), timeout=remaining)
        except asyncio.TimeoutError as exc:
            raise on_timeout(
                f"Run budget exhausted for transfer {run.transfer_id} after {run.elapsed_ms}ms"
            ) from exc

    async def _fail(
        self,
        run: _Run,
        step: OrchestrationState,
        status: TransferStatus,
        code: str,
        reason: str | None,
        *,
        cause: Exception | None = None,
        error_code: str | None = None,
    ):
        result = run.result(
            status, failed_step=step, error_code=error_code or code, reason=reason,
        )
        await self.repository.save(result)

        extra = {"transfer_id": str(run.transfer_id), "step": step.value, "elapsed_ms": run.elapsed_ms}
        if status == TransferStatus.DENIED:
            logger.info(
                "Transfer %s denied at %s: %s (%dms)",
                run.transfer_id, step.value, reason, run.elapsed_ms, extra=extra,
            )
        else:
            logger.warning(
                "Transfer %s failed at %s: %s %s (%dms)",
                run.transfer_id, step.value, code, cause, run.elapsed_ms, extra=extra,
            )

        raise OrchestrationError(
            transfer_id=run.transfer_id,
            step=step,
            status=status,
            code=code,
            reason=reason,
            cause=cause,
            result=result,
        )

    @staticmethod
    def _log_step(run: _Run, state: OrchestrationState, message: str, *args) -> None:
        logger.info(
            "Transfer %s [%s] " + message + " (%dms)",
            run.transfer_id, state.value, *args, run.elapsed_ms,
            extra={"transfer_id": str(run.transfer_id), "step": state.value,
                   "elapsed_ms": run.elapsed_ms},
        )


def build_orchestrator(redis=None, repository: TransferRepository | None = None) -> TransferOrchestrator:
    """Orchestrator wired from settings, the active config snapshot and the provider factories."""
    config = get_engine_config()
    return TransferOrchestrator(
        compliance_gate=ComplianceGate(
            get_compliance_provider(),
            config.limits,
            skip_checks=settings.SKIP_COMPLIANCE_CHECKS,
        ),
        rate_resolver=build_rate_resolver(redis),
        scheme_client=get_scheme_client(),
        repository=repository or get_transfer_repository(),
        config=config,
    )
