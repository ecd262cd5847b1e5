"""
One-shot transfer against the mock hub — runs the full pipeline locally.

Usage:
    python scripts/send_transfer.py 500 USD EUR
    python scripts/send_transfer.py 100 USD NGN --country NG

Uses the mock rate table, mock KYC/AML and the fixed-response scheme
client, with an in-memory repository (no database or Redis required).
"""

import argparse
import asyncio
import json
import logging
from dataclasses import asdict
from decimal import Decimal

from app.services.compliance_service import ComplianceGate, MockComplianceProvider
from app.services.rate_service import ExchangeRateResolver, MockRateProvider
from app.services.scheme_client import MockSchemeClient
from app.transfers.config import get_engine_config
from app.transfers.errors import OrchestrationError
from app.transfers.orchestrator import TransferOrchestrator
from app.transfers.repository import InMemoryTransferRepository
from app.transfers.types import TransferRequest


async def main(args: argparse.Namespace) -> None:
    config = get_engine_config()
    orchestrator = TransferOrchestrator(
        compliance_gate=ComplianceGate(MockComplianceProvider(), config.limits),
        rate_resolver=ExchangeRateResolver(MockRateProvider()),
        scheme_client=MockSchemeClient(config.source_fsp_id, config.participants),
        repository=InMemoryTransferRepository(),
        config=config,
    )
    request = TransferRequest(
        sender_id="dev-sender",
        receiver_id="dev-receiver",
        amount=Decimal(args.amount),
        source_currency=args.source.upper(),
        target_currency=args.target.upper(),
        receiver_phone="+254712345678",
        receiver_country=args.country,
    )

    try:
        result = await orchestrator.initiate_transfer(request)
    except OrchestrationError as exc:
        print(f"\n=== Transfer failed: {exc.code} at {exc.step.value} ===")
        print(exc.user_message)
        return

    print("\n=== Transfer Result ===")
    print(json.dumps(asdict(result), indent=2, default=str))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one mocked transfer")
    parser.add_argument("amount")
    parser.add_argument("source")
    parser.add_argument("target")
    parser.add_argument("--country")
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    asyncio.run(main(parser.parse_args()))
