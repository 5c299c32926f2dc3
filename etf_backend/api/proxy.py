"""CoinGecko read proxy.

Keeps the API key server-side, limits each client's request rate and
restricts callers to a fixed set of read endpoints. When CoinGecko is down
the caller still gets a 200 with a small mock market list.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from etf_backend.api.deps import client_identity, get_coingecko, get_rate_limiter
from etf_backend.errors import UpstreamUnavailable, ValidationError
from etf_backend.services.coingecko import CoinGeckoAdapter
from etf_backend.services.rate_limit import RateLimiter
from etf_backend.utils.constants import PROXY_ALLOWED_ENDPOINTS, PROXY_CACHE_CONTROL, PROXY_MOCK_MARKETS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["proxy"])


def is_allowed_endpoint(endpoint: str) -> bool:
    if ".." in endpoint:
        return False
    return any(endpoint.startswith(allowed) for allowed in PROXY_ALLOWED_ENDPOINTS)


def upstream_params(
    endpoint: str,
    vs_currency: str,
    ids: str,
    order: str,
    per_page: str,
    page: str,
) -> dict[str, str]:
    """Query string forwarded upstream for the given endpoint."""
    params = {"vs_currency": vs_currency}
    if "markets" in endpoint:
        params.update({"ids": ids, "order": order, "per_page": per_page, "page": page})
    elif "/simple/price" in endpoint:
        # /simple/price takes vs_currencies, not vs_currency
        params.update({
            "vs_currencies": vs_currency,
            "ids": ids,
            "include_24hr_change": "true",
            "include_market_cap": "true",
        })
    return params


@router.get("/coingecko")
async def coingecko_proxy(
    request: Request,
    endpoint: str = "/coins/markets",
    vs_currency: str = "usd",
    ids: str = "bitcoin,ethereum",
    order: str = "market_cap_desc",
    per_page: str = "10",
    page: str = "1",
    adapter: CoinGeckoAdapter = Depends(get_coingecko),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    await limiter.check(client_identity(request))

    if not is_allowed_endpoint(endpoint):
        return JSONResponse(status_code=403, content={"error": "Endpoint not allowed"})

    for name, value in (("per_page", per_page), ("page", page)):
        if not value.isdigit() or int(value) < 1:
            raise ValidationError(f"{name} must be a positive integer")

    params = upstream_params(endpoint, vs_currency, ids, order, per_page, page)
    try:
        data = await adapter.proxy_get(endpoint, params)
    except UpstreamUnavailable as e:
        logger.warning(f"CoinGecko proxy error on {endpoint}: {e.message}")
        return JSONResponse(
            status_code=200,
            content={
                "error": "Failed to fetch crypto data",
                "message": e.message,
                "mock": PROXY_MOCK_MARKETS,
            },
        )

    return JSONResponse(content=data, headers={"Cache-Control": PROXY_CACHE_CONTROL})
