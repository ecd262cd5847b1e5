"""
Fee calculator — service, exchange and network fees for a transfer.

Fees are always charged against the amount the sender typed, in the
source currency:

    service_fee  = amount * SERVICE_FEE_RATE
    exchange_fee = amount * EXCHANGE_FEE_RATE   (only when converting)
    network_fee  = NETWORK_FEE_FLAT
    total        = service_fee + exchange_fee + network_fee

Rates come from a ``FeeSchedule`` (built from settings) so they can be
changed per environment without code changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.config import Settings
from app.transfers.errors import InvariantViolation
from app.transfers.types import FeeBreakdown, quantize_money

ZERO = Decimal("0")


@dataclass(frozen=True)
class FeeSchedule:
    service_rate: Decimal = Decimal("0.01")
    exchange_rate: Decimal = Decimal("0.005")
    network_flat: Decimal = Decimal("0.50")

    def __post_init__(self):
        for name in ("service_rate", "exchange_rate", "network_flat"):
            if getattr(self, name) < 0:
                raise InvariantViolation(f"Fee schedule {name} must not be negative")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FeeSchedule":
        return cls(
            service_rate=settings.SERVICE_FEE_RATE,
            exchange_rate=settings.EXCHANGE_FEE_RATE,
            network_flat=settings.NETWORK_FEE_FLAT,
        )


class FeeCalculator:
    """Pure fee arithmetic; no I/O."""

    def __init__(self, schedule: FeeSchedule | None = None):
        self.schedule = schedule or FeeSchedule()

    def compute(
        self,
        amount: Decimal,
        has_conversion: bool,
        currency: str | None = None,
    ) -> FeeBreakdown:
        """
        Return the fee breakdown for ``amount``.

        Raises InvariantViolation for a non-Decimal or non-positive amount:
        validated requests never carry one, so reaching here means an
        upstream contract was broken.
        """
        if not isinstance(amount, Decimal) or not amount.is_finite() or amount <= 0:
            raise InvariantViolation(f"Fee calculation received invalid amount {amount!r}")

        service_fee = quantize_money(amount * self.schedule.service_rate)
        exchange_fee = (
            quantize_money(amount * self.schedule.exchange_rate)
            if has_conversion
            else quantize_money(ZERO)
        )
        network_fee = quantize_money(self.schedule.network_flat)

        return FeeBreakdown(
            service_fee=service_fee,
            exchange_fee=exchange_fee,
            network_fee=network_fee,
            currency=currency,
        )
