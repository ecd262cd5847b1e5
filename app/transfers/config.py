"""
Transfer engine configuration snapshot.

Fee rates, compliance limits and the currency → participant mapping are
read once from settings into an immutable ``EngineConfig``. Components
receive the snapshot at construction; ``reload_engine_config`` swaps the
module reference in a single assignment, so runs already in flight keep
the snapshot they were built with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping

from app.config import Settings, settings
from app.services.fee_service import FeeSchedule
from app.transfers.errors import InvariantViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComplianceLimits:
    min_amount: Decimal = Decimal("1")
    max_amount: Decimal = Decimal("10000")

    def __post_init__(self):
        if self.min_amount <= 0 or self.max_amount < self.min_amount:
            raise InvariantViolation(
                f"Invalid transaction limits [{self.min_amount}, {self.max_amount}]"
            )


@dataclass(frozen=True)
class ParticipantDirectory:
    """Read-only currency → scheme participant (DFSP) id mapping."""
    by_currency: Mapping[str, str] = field(default_factory=dict)
    default_fsp_id: str = "paymentswithoutborders"

    def __post_init__(self):
        frozen = MappingProxyType({k.upper(): v for k, v in dict(self.by_currency).items()})
        object.__setattr__(self, "by_currency", frozen)

    def resolve(self, currency: str) -> str:
        return self.by_currency.get(currency.upper(), self.default_fsp_id)


@dataclass(frozen=True)
class EngineConfig:
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    limits: ComplianceLimits = field(default_factory=ComplianceLimits)
    participants: ParticipantDirectory = field(default_factory=ParticipantDirectory)
    source_fsp_id: str = "paymentswithoutborders"
    transfer_expiration_seconds: int = 300
    production: bool = False

    @classmethod
    def from_settings(cls, source: Settings) -> "EngineConfig":
        return cls(
            fees=FeeSchedule.from_settings(source),
            limits=ComplianceLimits(
                min_amount=source.MIN_TRANSACTION_AMOUNT,
                max_amount=source.MAX_TRANSACTION_AMOUNT,
            ),
            participants=ParticipantDirectory(
                by_currency=source.FSP_ID_BY_CURRENCY,
                default_fsp_id=source.DEFAULT_FSP_ID,
            ),
            source_fsp_id=source.MOJALOOP_DFSP_ID,
            transfer_expiration_seconds=source.TRANSFER_EXPIRATION_SECONDS,
            production=source.is_production,
        )


_current: EngineConfig | None = None


def get_engine_config() -> EngineConfig:
    """Return the active snapshot (built from settings on first use)."""
    global _current
    if _current is None:
        _current = EngineConfig.from_settings(settings)
    return _current


def reload_engine_config(source: Settings | None = None) -> EngineConfig:
    """Build a fresh snapshot and make it the active one."""
    global _current
    snapshot = EngineConfig.from_settings(source or Settings())
    _current = snapshot
    logger.info(
        "Engine config reloaded: limits=[%s, %s] participants=%d production=%s",
        snapshot.limits.min_amount, snapshot.limits.max_amount,
        len(snapshot.participants.by_currency), snapshot.production,
    )
    return snapshot


def set_engine_config(config: EngineConfig | None) -> None:
    """Override the active snapshot (used in tests)."""
    global _current
    _current = config
