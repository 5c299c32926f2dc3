"""Tests for the CoinGecko adapter using httpx.MockTransport."""

import httpx
import pytest

from etf_backend.errors import UpstreamUnavailable
from etf_backend.services.coingecko import BASE_URL, CoinGeckoAdapter

ASSETS = ["bitcoin", "ethereum", "solana", "cardano"]


def _adapter(handler) -> CoinGeckoAdapter:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return CoinGeckoAdapter(api_key="", client=client)


def _json(payload, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=payload)
    return handler


class TestFetchPrices:
    @pytest.mark.asyncio
    async def test_single_batched_request(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "bitcoin": {"usd": 43000, "usd_market_cap": 8.4e11, "usd_24h_vol": 2.1e10, "usd_24h_change": 2.5},
                "ethereum": {"usd": 2300.5, "usd_24h_change": -1.25},
            })

        quotes = await _adapter(handler).fetch_prices(ASSETS)

        assert len(seen) == 1
        params = seen[0].url.params
        assert seen[0].url.path.endswith("/simple/price")
        assert params["ids"] == "bitcoin,ethereum,solana,cardano"
        assert params["vs_currencies"] == "usd"
        assert params["include_24hr_change"] == "true"
        assert quotes["bitcoin"].price_usd == 43000.0
        assert quotes["bitcoin"].market_cap == 8.4e11
        assert quotes["ethereum"].change_24h == -1.25
        assert quotes["ethereum"].volume_24h is None

    @pytest.mark.asyncio
    async def test_omitted_assets_are_absent_not_zero_filled(self):
        quotes = await _adapter(_json({"bitcoin": {"usd": 43000}})).fetch_prices(ASSETS)
        assert set(quotes) == {"bitcoin"}

    @pytest.mark.asyncio
    async def test_row_without_usd_is_skipped(self):
        quotes = await _adapter(_json({"bitcoin": {"usd": None}, "solana": {"usd": 99}})).fetch_prices(ASSETS)
        assert set(quotes) == {"solana"}

    @pytest.mark.asyncio
    async def test_empty_id_list_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await _adapter(handler).fetch_prices([]) == {}

    @pytest.mark.asyncio
    async def test_non_2xx_raises_upstream_unavailable(self):
        with pytest.raises(UpstreamUnavailable, match="429"):
            await _adapter(_json({"status": "rate limited"}, status=429)).fetch_prices(ASSETS)

    @pytest.mark.asyncio
    async def test_non_object_payload_raises(self):
        with pytest.raises(UpstreamUnavailable):
            await _adapter(_json([1, 2, 3])).fetch_prices(ASSETS)

    @pytest.mark.asyncio
    async def test_malformed_price_raises(self):
        with pytest.raises(UpstreamUnavailable):
            await _adapter(_json({"bitcoin": {"usd": "not-a-number"}})).fetch_prices(ASSETS)

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>oops</html>")

        with pytest.raises(UpstreamUnavailable):
            await _adapter(handler).fetch_prices(ASSETS)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamUnavailable):
            await _adapter(handler).fetch_prices(ASSETS)


class TestConfiguration:
    def test_api_key_selects_pro_endpoint(self):
        adapter = CoinGeckoAdapter(api_key="secret")
        assert str(adapter._client.base_url).startswith("https://pro-api.coingecko.com")
        assert adapter._client.headers["x-cg-pro-api-key"] == "secret"

    def test_public_endpoint_without_key(self):
        adapter = CoinGeckoAdapter(api_key="")
        assert str(adapter._client.base_url).startswith("https://api.coingecko.com")
        assert "x-cg-pro-api-key" not in adapter._client.headers
