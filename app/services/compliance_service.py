"""
Compliance gate — transaction limits, KYC status and AML screening.

Architecture:
  - ComplianceProvider (protocol) supplies KYC and AML verdicts
  - MockComplianceProvider returns deterministic verdicts for development
  - HttpComplianceProvider calls the external KYC and AML services
  - COMPLIANCE_MOCK=true (default) selects the mock provider

The gate runs its checks in order and stops at the first failure:

    1. amount within [MIN_TRANSACTION_AMOUNT, MAX_TRANSACTION_AMOUNT] -> DENY
    2. sender KYC status must be VERIFIED                             -> DENY
    3. AML screening: FLAGGED -> DENY, UNDER_REVIEW -> MANUAL_REVIEW

SKIP_COMPLIANCE_CHECKS=true bypasses checks 2 and 3 (never the limits).
Provider failures fail closed: KYC becomes unverified, AML goes to review.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

import httpx

from app.config import settings
from app.transfers.config import ComplianceLimits
from app.transfers.types import TransferRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------


class KYCStatus(str, enum.Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    REJECTED = "rejected"
    NOT_SUBMITTED = "not_submitted"


class AMLStatus(str, enum.Enum):
    CLEAR = "clear"
    FLAGGED = "flagged"
    UNDER_REVIEW = "under_review"


class ComplianceDecision(str, enum.Enum):
    ALLOW = "allow"
    DENY = "deny"
    MANUAL_REVIEW = "manual_review"


@dataclass(frozen=True)
class AMLScreening:
    status: AMLStatus
    risk_score: str = "low"
    reason: str | None = None


@dataclass(frozen=True)
class ComplianceVerdict:
    decision: ComplianceDecision
    reason: str | None = None
    code: str | None = None

    @classmethod
    def allow(cls) -> "ComplianceVerdict":
        return cls(ComplianceDecision.ALLOW)

    @classmethod
    def deny(cls, code: str, reason: str) -> "ComplianceVerdict":
        return cls(ComplianceDecision.DENY, reason=reason, code=code)

    @classmethod
    def manual_review(cls, code: str, reason: str) -> "ComplianceVerdict":
        return cls(ComplianceDecision.MANUAL_REVIEW, reason=reason, code=code)


# ---------------------------------------------------------------------------
# Provider protocol
# ---------------------------------------------------------------------------


class ComplianceProvider(Protocol):
    async def kyc_status(self, sender_id: str) -> KYCStatus: ...

    async def screen(self, request: TransferRequest) -> AMLScreening: ...


# ---------------------------------------------------------------------------
# Mock provider (development / testing)
# ---------------------------------------------------------------------------


class MockComplianceProvider:
    """
    Deterministic verdicts.

    Senders listed in ``kyc_overrides`` get that KYC status; everyone else is
    VERIFIED. Receivers in a high-risk country are FLAGGED and amounts above
    ``review_threshold`` go to review.
    """

    def __init__(
        self,
        kyc_overrides: dict[str, KYCStatus] | None = None,
        review_threshold: Decimal = Decimal("5000"),
        high_risk_countries: Iterable[str] = ("AF", "IR", "KP", "SY"),
    ):
        self._kyc_overrides = dict(kyc_overrides or {})
        self._review_threshold = review_threshold
        self._high_risk = {c.upper() for c in high_risk_countries}

    async def kyc_status(self, sender_id: str) -> KYCStatus:
        return self._kyc_overrides.get(sender_id, KYCStatus.VERIFIED)

    async def screen(self, request: TransferRequest) -> AMLScreening:
        country = (request.receiver_country or "").upper()
        if country in self._high_risk:
            return AMLScreening(
                AMLStatus.FLAGGED, "high",
                f"Recipient country {country} is on the high-risk list",
            )
        if request.amount > self._review_threshold:
            return AMLScreening(
                AMLStatus.UNDER_REVIEW, "high",
                "Amount above automatic screening threshold",
            )
        if request.amount > self._review_threshold / 5:
            return AMLScreening(AMLStatus.CLEAR, "medium")
        return AMLScreening(AMLStatus.CLEAR, "low")


# ---------------------------------------------------------------------------
# HTTP provider
# ---------------------------------------------------------------------------


class HttpComplianceProvider:
    """Calls the external KYC and AML screening services."""

    def __init__(
        self,
        kyc_url: str,
        kyc_api_key: str,
        aml_url: str,
        aml_api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._kyc_url = kyc_url.rstrip("/")
        self._kyc_api_key = kyc_api_key
        self._aml_url = aml_url.rstrip("/")
        self._aml_api_key = aml_api_key
        self._timeout = timeout
        self._transport = transport

    async def kyc_status(self, sender_id: str) -> KYCStatus:
        url = f"{self._kyc_url}/customers/{sender_id}/kyc"
        headers = {"Authorization": f"Bearer {self._kyc_api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("KYC status request failed: %s", exc.response.status_code)
            return KYCStatus.NOT_SUBMITTED
        except httpx.RequestError as exc:
            logger.error("KYC status request error: %s", exc)
            return KYCStatus.NOT_SUBMITTED
        except ValueError:
            logger.error("KYC provider returned a non-JSON body")
            return KYCStatus.NOT_SUBMITTED

        if not isinstance(data, dict):
            logger.error("KYC provider returned %s, expected an object", type(data).__name__)
            return KYCStatus.NOT_SUBMITTED
        try:
            return KYCStatus(str(data.get("status", "")).lower())
        except ValueError:
            logger.error("KYC provider returned unknown status %r", data.get("status"))
            return KYCStatus.NOT_SUBMITTED

    async def screen(self, request: TransferRequest) -> AMLScreening:
        url = f"{self._aml_url}/screenings"
        headers = {"Authorization": f"Bearer {self._aml_api_key}"}
        body = {
            "senderId": request.sender_id,
            "senderName": request.sender_name,
            "recipientId": request.receiver_id,
            "recipientName": request.receiver_name,
            "recipientCountry": request.receiver_country,
            "transactionAmount": str(request.amount),
            "currency": request.source_currency,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(url, json=body, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("AML screening request failed: %s", exc.response.status_code)
            return AMLScreening(AMLStatus.UNDER_REVIEW, "unknown", "Screening service error")
        except httpx.RequestError as exc:
            logger.error("AML screening request error: %s", exc)
            return AMLScreening(AMLStatus.UNDER_REVIEW, "unknown", "Screening service unreachable")
        except ValueError:
            logger.error("AML provider returned a non-JSON body")
            return AMLScreening(AMLStatus.UNDER_REVIEW, "unknown", "Unreadable screening result")

        if not isinstance(data, dict):
            logger.error("AML provider returned %s, expected an object", type(data).__name__)
            return AMLScreening(AMLStatus.UNDER_REVIEW, "unknown", "Unreadable screening result")
        try:
            status = AMLStatus(str(data.get("status", "")).lower())
        except ValueError:
            logger.error("AML provider returned unknown status %r", data.get("status"))
            return AMLScreening(AMLStatus.UNDER_REVIEW, "unknown", "Unrecognised screening result")

        return AMLScreening(
            status=status,
            risk_score=str(data.get("riskScore", "low")),
            reason=data.get("reason"),
        )


# ---------------------------------------------------------------------------
# Factory — selects provider based on config
# ---------------------------------------------------------------------------

_provider: ComplianceProvider | None = None


def get_compliance_provider() -> ComplianceProvider:
    """Return the configured compliance provider (cached after first call)."""
    global _provider
    if _provider is not None:
        return _provider

    if settings.COMPLIANCE_MOCK:
        logger.info("Using MockComplianceProvider for KYC/AML")
        _provider = MockComplianceProvider(
            review_threshold=settings.AML_REVIEW_THRESHOLD,
            high_risk_countries=settings.AML_HIGH_RISK_COUNTRIES,
        )
    else:
        logger.info("Using HttpComplianceProvider (live KYC/AML services)")
        _provider = HttpComplianceProvider(
            kyc_url=settings.KYC_PROVIDER_URL,
            kyc_api_key=settings.KYC_PROVIDER_API_KEY,
            aml_url=settings.AML_PROVIDER_URL,
            aml_api_key=settings.AML_PROVIDER_API_KEY,
            timeout=settings.COMPLIANCE_TIMEOUT_SECONDS,
        )
    return _provider


def set_compliance_provider(provider: ComplianceProvider | None) -> None:
    """Override the compliance provider (used in tests)."""
    global _provider
    _provider = provider


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class ComplianceGate:
    """Allow / deny / manual-review decision for one transfer request."""

    def __init__(
        self,
        provider: ComplianceProvider,
        limits: ComplianceLimits,
        skip_checks: bool = False,
    ):
        self.provider = provider
        self.limits = limits
        self.skip_checks = skip_checks

    async def check(self, request: TransferRequest) -> ComplianceVerdict:
        if request.amount > self.limits.max_amount:
            return ComplianceVerdict.deny(
                "AMOUNT_ABOVE_MAXIMUM", "Transaction amount exceeds maximum limit",
            )
        if request.amount < self.limits.min_amount:
            return ComplianceVerdict.deny(
                "AMOUNT_BELOW_MINIMUM", "Transaction amount below minimum limit",
            )

        if self.skip_checks:
            logger.warning(
                "SKIP_COMPLIANCE_CHECKS is enabled: KYC/AML bypassed for sender %s",
                request.sender_id,
            )
            return ComplianceVerdict.allow()

        kyc = await self.provider.kyc_status(request.sender_id)
        if kyc != KYCStatus.VERIFIED:
            return ComplianceVerdict.deny(
                "KYC_NOT_VERIFIED", f"Sender identity verification is {kyc.value}",
            )

        screening = await self.provider.screen(request)
        if screening.status == AMLStatus.FLAGGED:
            return ComplianceVerdict.deny(
                "AML_FLAGGED", "Transfer blocked by sanctions/AML screening",
            )
        if screening.status == AMLStatus.UNDER_REVIEW:
            return ComplianceVerdict.manual_review(
                "AML_UNDER_REVIEW", "Transfer requires manual compliance review",
            )

        logger.info(
            "Compliance checks passed for sender %s (risk=%s)",
            request.sender_id, screening.risk_score,
        )
        return ComplianceVerdict.allow()
