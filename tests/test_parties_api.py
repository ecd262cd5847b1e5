"""Tests for scheme party lookup."""

from unittest.mock import AsyncMock

import pytest

from app.api.deps import get_scheme
from app.transfers.errors import SchemeRejectedError, SchemeUnavailableError


@pytest.fixture
def failing_scheme():
    """Install a scheme client whose lookup raises ``error``."""
    from app.main import app

    def _install(error):
        scheme = AsyncMock()
        scheme.lookup_party = AsyncMock(side_effect=error)

        async def _get():
            return scheme
        app.dependency_overrides[get_scheme] = _get

    return _install


class TestPartyLookup:

    @pytest.mark.asyncio
    async def test_lookup(self, client, auth_headers, scheme):
        resp = await client.post(
            "/api/v1/parties/lookup",
            json={"identifier": "+254712345678"},
            headers=auth_headers,
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["id_type"] == "MSISDN"
        assert data["identifier"] == "+254712345678"
        assert data["fsp_id"] == "mobilebank"
        assert data["name"] == "John Smith"
        assert scheme.sent[0][1] == "/parties/MSISDN/+254712345678"

    @pytest.mark.asyncio
    async def test_requires_auth(self, client):
        resp = await client.post("/api/v1/parties/lookup", json={"identifier": "+254712345678"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_id_type(self, client, auth_headers):
        resp = await client.post(
            "/api/v1/parties/lookup",
            json={"id_type": "PASSPORT", "identifier": "X1"},
            headers=auth_headers,
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_not_found(self, client, auth_headers, failing_scheme):
        failing_scheme(SchemeRejectedError("3204", "Party not found"))
        resp = await client.post(
            "/api/v1/parties/lookup", json={"identifier": "+254700000000"}, headers=auth_headers,
        )
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_other_rejection(self, client, auth_headers, failing_scheme):
        failing_scheme(SchemeRejectedError("3100", "Generic validation error"))
        resp = await client.post(
            "/api/v1/parties/lookup", json={"identifier": "+254700000000"}, headers=auth_headers,
        )
        assert resp.status_code == 502

    @pytest.mark.asyncio
    async def test_hub_unavailable(self, client, auth_headers, failing_scheme):
        failing_scheme(SchemeUnavailableError("timed out"))
        resp = await client.post(
            "/api/v1/parties/lookup", json={"identifier": "+254700000000"}, headers=auth_headers,
        )
        assert resp.status_code == 503
