"""
Shared test fixtures for PaymentsWithoutBorders.

Provides the async test client, Redis mocks, RSA key fixtures for JWT
testing, and a transfer orchestrator assembled from test doubles.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient

from app.core import security
from app.redis_client import get_redis
from app.services.compliance_service import (
    ComplianceGate,
    MockComplianceProvider,
    set_compliance_provider,
)
from app.services.rate_service import ExchangeRateResolver, MockRateProvider, set_rate_provider
from app.services.scheme_client import MockSchemeClient, set_scheme_client
from app.transfers.config import EngineConfig, ParticipantDirectory, set_engine_config
from app.transfers.orchestrator import TransferOrchestrator
from app.transfers.repository import InMemoryTransferRepository, set_transfer_repository
from app.transfers.types import TransferRequest


# --- RSA Key Fixtures ---


@pytest.fixture(scope="session")
def test_rsa_keys():
    """Generate a temporary RSA keypair for test JWT signing."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )

    return {"private_key": private_pem, "public_key": public_pem}


@pytest.fixture(autouse=True)
def security_with_keys(test_rsa_keys):
    """Configure JWT handling to use test RSA keys for every test."""
    security.configure_keys(
        private_key=test_rsa_keys["private_key"],
        public_key=test_rsa_keys["public_key"],
        algorithm="RS256",
    )


@pytest.fixture(autouse=True)
def _reset_overrides():
    """Module-level provider/client overrides never leak between tests."""
    yield
    set_engine_config(None)
    set_rate_provider(None)
    set_compliance_provider(None)
    set_scheme_client(None)
    set_transfer_repository(None)


# --- Mock Redis ---


@pytest.fixture
def mock_redis():
    """AsyncMock Redis client with common methods."""
    redis = AsyncMock()
    redis.setex = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.delete = AsyncMock()
    return redis


# --- Clock ---


class FakeClock:
    """Callable clock frozen at ``now`` until advanced."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


# --- Engine collaborators ---


@pytest.fixture
def engine_config():
    return EngineConfig(
        participants=ParticipantDirectory(
            by_currency={"USD": "dfsp-usd", "EUR": "dfsp-eur", "NGN": "dfsp-ngn", "KES": "dfsp-kes"},
            default_fsp_id="paymentswithoutborders",
        ),
        source_fsp_id="paymentswithoutborders",
    )


@pytest.fixture
def scheme(engine_config, clock):
    """Fixed-response scheme client; ``scheme.sent`` records every call."""
    return MockSchemeClient(engine_config.source_fsp_id, engine_config.participants, clock=clock)


@pytest.fixture
def repository():
    return InMemoryTransferRepository()


@pytest.fixture
def compliance_provider():
    return MockComplianceProvider()


@pytest.fixture
def make_orchestrator(engine_config, scheme, repository, compliance_provider, clock):
    """Factory for an orchestrator built from test doubles; any part can be replaced."""

    def _make(**overrides) -> TransferOrchestrator:
        parts = {
            "compliance_gate": ComplianceGate(compliance_provider, engine_config.limits),
            "rate_resolver": ExchangeRateResolver(MockRateProvider(), clock=clock),
            "scheme_client": scheme,
            "repository": repository,
            "config": engine_config,
            "clock": clock,
        }
        parts.update(overrides)
        return TransferOrchestrator(**parts)

    return _make


@pytest.fixture
def orchestrator(make_orchestrator):
    return make_orchestrator()


# --- Sample Data ---


def _make_request(**overrides) -> TransferRequest:
    defaults = {
        "sender_id": "user-1001",
        "receiver_id": "user-2002",
        "amount": Decimal("100.00"),
        "source_currency": "USD",
        "target_currency": "USD",
        "sender_name": "Ada Obi",
        "sender_phone": "+15551234567",
        "receiver_name": "Wanjiru Kamau",
        "receiver_phone": "+254712345678",
        "receiver_country": "KE",
    }
    defaults.update(overrides)
    return TransferRequest(**defaults)


@pytest.fixture
def make_request():
    """Factory fixture for TransferRequest values."""
    return _make_request


# --- HTTP client ---


@pytest.fixture
def access_token():
    return security.create_access_token("user-1001", name="Ada Obi", phone="+15551234567")


@pytest.fixture
def auth_headers(access_token):
    return {"Authorization": f"Bearer {access_token}"}


@pytest_asyncio.fixture
async def client(orchestrator, repository, scheme, mock_redis):
    """
    Async HTTP test client with the orchestrator, repository, scheme
    client and Redis overridden to use test doubles.
    """
    from app.api.deps import get_orchestrator, get_repository, get_scheme
    from app.main import app

    async def override_get_orchestrator():
        return orchestrator

    async def override_get_repository():
        return repository

    async def override_get_scheme():
        return scheme

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_orchestrator] = override_get_orchestrator
    app.dependency_overrides[get_repository] = override_get_repository
    app.dependency_overrides[get_scheme] = override_get_scheme
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
