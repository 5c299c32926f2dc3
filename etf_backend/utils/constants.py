"""Shared constants and defaults."""

# Synthetic symbol under which the basket price is stored
BASKET_SYMBOL = "ETF"

# CoinGecko id -> stored symbol, in fetch order
TRACKED_ASSETS: dict[str, str] = {
    "bitcoin": "BTC",
    "ethereum": "ETH",
    "solana": "SOL",
    "cardano": "ADA",
}

# Basket price when no constituent price is available
FALLBACK_BASKET_PRICE = 100.0
FALLBACK_BASKET_CHANGE = 0.0

# Read proxy
PROXY_ALLOWED_ENDPOINTS = [
    "/coins/markets",
    "/coins/bitcoin",
    "/coins/ethereum",
    "/simple/price",
    "/global",
]
PROXY_CACHE_CONTROL = "public, s-maxage=60, stale-while-revalidate=30"
PROXY_USER_AGENT = "ETF-Platform/1.0"

# Served by the read proxy when CoinGecko is down
PROXY_MOCK_MARKETS = [
    {
        "id": "bitcoin",
        "symbol": "btc",
        "name": "Bitcoin",
        "current_price": 43000,
        "market_cap": 840000000000,
        "price_change_percentage_24h": 2.5,
    },
    {
        "id": "ethereum",
        "symbol": "eth",
        "name": "Ethereum",
        "current_price": 2300,
        "market_cap": 275000000000,
        "price_change_percentage_24h": 1.8,
    },
]

# Alert evaluation falls back to these when a symbol has no stored price
STATIC_ALERT_PRICES: dict[str, float] = {"BTC": 43000.0, "ETH": 2300.0, "ETF": 1.0}

SCHEDULED_JOBS = ["price_sync", "alert_check"]
