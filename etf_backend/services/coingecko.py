"""CoinGecko price source.

One batched /simple/price call per sync cycle, normalized into AssetQuote
records keyed by CoinGecko id. Also backs the read proxy.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from etf_backend.config import settings
from etf_backend.errors import UpstreamUnavailable
from etf_backend.schemas.price import AssetQuote
from etf_backend.utils.constants import PROXY_USER_AGENT

logger = logging.getLogger(__name__)

BASE_URL = "https://api.coingecko.com/api/v3"
PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"

SIMPLE_PRICE_PARAMS = {
    "vs_currencies": "usd",
    "include_market_cap": "true",
    "include_24hr_vol": "true",
    "include_24hr_change": "true",
}


class CoinGeckoAdapter:
    """Thin async wrapper around the CoinGecko REST API.

    Uses the Pro endpoint and key header when an API key is configured.
    The adapter keeps no cache; every call hits the network.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.coingecko_api_key
        headers: dict[str, str] = {"Accept": "application/json", "User-Agent": PROXY_USER_AGENT}
        if self._api_key:
            headers["x-cg-pro-api-key"] = self._api_key
        base = PRO_BASE_URL if self._api_key else BASE_URL
        self._client = client or httpx.AsyncClient(
            base_url=base,
            headers=headers,
            timeout=timeout or settings.coingecko_timeout_seconds,
        )

    async def fetch_prices(self, asset_ids: list[str]) -> dict[str, AssetQuote]:
        """Fetch current USD quotes for the given CoinGecko ids in one request.

        Assets the provider omits (or returns without a usd price) are left
        out of the result rather than zero-filled.

        Raises:
            UpstreamUnavailable: non-2xx status, transport failure, or a
                payload that is not the expected {id: {...}} shape.
        """
        if not asset_ids:
            return {}

        params = SIMPLE_PRICE_PARAMS | {"ids": ",".join(asset_ids)}
        data = await self._get_json("/simple/price", params)
        if not isinstance(data, dict):
            raise UpstreamUnavailable("CoinGecko returned an unexpected payload")

        quotes: dict[str, AssetQuote] = {}
        for asset_id in asset_ids:
            row = data.get(asset_id)
            if not row:
                logger.warning(f"CoinGecko omitted {asset_id}; skipping")
                continue
            if not isinstance(row, dict):
                raise UpstreamUnavailable(f"CoinGecko row for {asset_id} is malformed")
            if row.get("usd") is None:
                logger.warning(f"CoinGecko returned no usd price for {asset_id}; skipping")
                continue
            quotes[asset_id] = _quote_from_simple_price(asset_id, row)
        return quotes

    async def proxy_get(self, endpoint: str, params: dict[str, str]) -> Any:
        """Pass a read request through to CoinGecko and return the decoded JSON."""
        return await self._get_json(endpoint, params)

    async def close(self):
        await self._client.aclose()

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"CoinGecko API error: {e.response.status_code} {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"CoinGecko unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable("CoinGecko returned invalid JSON") from e


def _quote_from_simple_price(asset_id: str, row: dict) -> AssetQuote:
    """Build an AssetQuote from a /simple/price response row."""
    try:
        return AssetQuote(
            price_usd=float(row["usd"]),
            change_24h=_optional_float(row.get("usd_24h_change")),
            market_cap=_optional_float(row.get("usd_market_cap")),
            volume_24h=_optional_float(row.get("usd_24h_vol")),
        )
    except (TypeError, ValueError, PydanticValidationError) as e:
        raise UpstreamUnavailable(f"CoinGecko row for {asset_id} is malformed: {e}") from e


def _optional_float(value) -> float | None:
    return float(value) if value is not None else None
