"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from etf_backend.config import settings
from etf_backend.database import create_db_and_tables
from etf_backend.utils.logging import setup_logging
from etf_backend.api import alerts, prices, proxy, realtime, system
from etf_backend.api.errors import register_error_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging()
    create_db_and_tables()

    from etf_backend.services.change_feed import price_feed
    from etf_backend.services.coingecko import CoinGeckoAdapter
    from etf_backend.services.price_store import get_price_store
    from etf_backend.services.rate_limit import build_rate_limiter

    app.state.price_store = get_price_store()
    app.state.coingecko = CoinGeckoAdapter()
    app.state.rate_limiter = build_rate_limiter()

    from etf_backend.engine.scheduler import start_scheduler, stop_scheduler
    if settings.scheduler_enabled:
        start_scheduler()

    yield

    stop_scheduler()
    price_feed.close()
    await app.state.coingecko.close()


app = FastAPI(
    title="ETF Price Service",
    description="Crypto price sync, ETF basket index and realtime price fan-out",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Mount routers
app.include_router(prices.router)
app.include_router(proxy.router)
app.include_router(alerts.router)
app.include_router(system.router)
app.include_router(realtime.router)
