"""Shared API dependencies, resolved from app.state set up in the lifespan."""

import hashlib

from fastapi import Request

from etf_backend.services.coingecko import CoinGeckoAdapter
from etf_backend.services.price_store import PriceStore
from etf_backend.services.rate_limit import RateLimiter


def get_price_store(request: Request) -> PriceStore:
    return request.app.state.price_store


def get_coingecko(request: Request) -> CoinGeckoAdapter:
    return request.app.state.coingecko


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def client_identity(request: Request) -> str:
    """Rate-limit identity: auth header, else first forwarded hop, else peer address."""
    auth = request.headers.get("authorization")
    if auth:
        # Keyed by digest so tokens never land in the counter store
        return "auth:" + hashlib.sha256(auth.encode()).hexdigest()[:32]
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"
