"""Tests for rate, fee preview and currency endpoints."""

import pytest


class TestGetRate:

    @pytest.mark.asyncio
    async def test_direct_rate(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "usd", "to": "EUR"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["from_currency"] == "USD"
        assert data["to_currency"] == "EUR"
        assert data["rate"] == "0.85"
        assert data["provider"] == "mock"

    @pytest.mark.asyncio
    async def test_inverted_rate(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "KES", "to": "USD"})
        assert resp.status_code == 200
        assert resp.json()["provider"] == "inverted"

    @pytest.mark.asyncio
    async def test_same_currency(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "NGN", "to": "NGN"})
        assert resp.json()["rate"] == "1"
        assert resp.json()["provider"] == "direct"

    @pytest.mark.asyncio
    async def test_unsupported_currency(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "USD", "to": "JPY"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_params(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "USD"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_unavailable_pair(self, client):
        resp = await client.get("/api/v1/rates", params={"from": "USD", "to": "GHS"})
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "RATE_UNAVAILABLE"


class TestFeePreview:

    @pytest.mark.asyncio
    async def test_conversion_preview(self, client, scheme):
        """500 USD→EUR: 8.00 fees, 425.00 EUR, 508.00 debited; the hub is never called."""
        resp = await client.post("/api/v1/rates/fees", json={
            "amount": "500.00", "from_currency": "USD", "to_currency": "eur",
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["fees"]["service_fee"] == "5.00"
        assert data["fees"]["exchange_fee"] == "2.50"
        assert data["fees"]["network_fee"] == "0.50"
        assert data["fees"]["total"] == "8.00"
        assert data["converted_amount"] == "425.00"
        assert data["total_debit"] == "508.00"
        assert data["estimated_delivery"] == "1-2 minutes"
        assert scheme.sent == []

    @pytest.mark.asyncio
    async def test_same_currency_preview(self, client):
        resp = await client.post("/api/v1/rates/fees", json={
            "amount": "100.00", "from_currency": "USD", "to_currency": "USD",
        })
        data = resp.json()
        assert data["fees"]["total"] == "1.50"
        assert data["fees"]["exchange_fee"] == "0.00"
        assert data["estimated_delivery"] == "Instant"

    @pytest.mark.asyncio
    async def test_invalid_amount(self, client):
        resp = await client.post("/api/v1/rates/fees", json={
            "amount": "-1", "from_currency": "USD", "to_currency": "EUR",
        })
        assert resp.status_code == 422


class TestCurrencies:

    @pytest.mark.asyncio
    async def test_lists_supported_currencies(self, client):
        resp = await client.get("/api/v1/rates/currencies")

        assert resp.status_code == 200
        by_code = {c["code"]: c for c in resp.json()}
        assert set(by_code) == {"USD", "EUR", "GBP", "NGN", "KES", "GHS"}
        assert by_code["USD"]["symbol"] == "$"
        assert by_code["NGN"]["name"] == "Nigerian Naira"
        assert by_code["KES"]["fsp_id"] == "dfsp-kes"
