"""
Error taxonomy for the transfer engine.

Components raise the typed dependency errors below; the orchestrator
turns the first one it sees into a single ``OrchestrationError`` so that
callers never need to know which component failed or how.
"""

from __future__ import annotations

import uuid

from app.transfers.types import OrchestrationState, TransferResult, TransferStatus


class TransferEngineError(Exception):
    """Base class for expected (typed) engine failures."""
    code = "ENGINE_ERROR"


class RateUnavailableError(TransferEngineError):
    """No exchange rate exists for a pair in either direction."""
    code = "RATE_UNAVAILABLE"


class SchemeError(TransferEngineError):
    """Failure talking to the scheme hub."""
    code = "SCHEME_ERROR"


class SchemeUnavailableError(SchemeError):
    """Network failure or timeout; the request may be retried."""
    code = "SCHEME_UNAVAILABLE"


class SchemeRejectedError(SchemeError):
    """Protocol-level negative response from the hub."""
    code = "SCHEME_REJECTED"

    def __init__(self, scheme_code: str, description: str = ""):
        self.scheme_code = scheme_code
        self.description = description
        super().__init__(f"Scheme rejected request ({scheme_code}): {description}")


class QuoteExpiredError(SchemeError):
    """The quote expired before the transfer could be sent."""
    code = "QUOTE_EXPIRED"


class TransferNotFoundError(TransferEngineError):
    """No stored transfer with this id belongs to the sender."""
    code = "TRANSFER_NOT_FOUND"


class TransferRetryConflictError(TransferEngineError):
    """A stored transfer id was resubmitted but the run cannot be resumed."""
    code = "TRANSFER_RETRY_CONFLICT"


class InvariantViolation(Exception):
    """An upstream contract was broken; a programming error, never retried."""


# ---------------------------------------------------------------------------
# Orchestration error
# ---------------------------------------------------------------------------

USER_MESSAGES = {
    "DENIED": "The transfer was declined by compliance checks.",
    "RATE_UNAVAILABLE": "No exchange rate is available for this currency pair right now. Please try again later.",
    "SCHEME_UNAVAILABLE": "The payment network is temporarily unavailable. Please try again later.",
    "SCHEME_REJECTED": "The payment network rejected the transfer.",
    "QUOTE_EXPIRED": "The quote expired before the transfer could be completed. Please try again.",
}


class OrchestrationError(Exception):
    """Terminal failure of one orchestration run."""

    def __init__(
        self,
        transfer_id: uuid.UUID,
        step: OrchestrationState,
        status: TransferStatus,
        code: str,
        reason: str | None = None,
        cause: Exception | None = None,
        result: TransferResult | None = None,
    ):
        self.transfer_id = transfer_id
        self.step = step
        self.status = status
        self.code = code
        self.reason = reason
        self.cause = cause
        self.result = result
        super().__init__(f"Transfer {transfer_id} failed at {step.value}: {code}")

    @property
    def user_message(self) -> str:
        message = USER_MESSAGES.get(self.code, "The transfer could not be completed.")
        if self.code == "DENIED" and self.reason:
            return f"{message} Reason: {self.reason}"
        return message

    @property
    def retryable(self) -> bool:
        return self.code != "DENIED"

    @property
    def reuse_transfer_id(self) -> bool:
        """True when a retry must reuse this transfer id (outcome unknown at the hub)."""
        return (
            self.code == SchemeUnavailableError.code
            and self.step == OrchestrationState.TRANSFERRED
        )
