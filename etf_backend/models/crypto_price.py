"""CryptoPrice model: latest price per symbol, including the synthetic ETF basket."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class CryptoPrice(SQLModel, table=True):
    __tablename__ = "crypto_prices"

    symbol: str = Field(primary_key=True, max_length=16)  # "BTC", "ETH", ..., "ETF"
    price_usd: float = Field(ge=0)
    price_change_24h: float = 0.0  # percent; 0 when unknown
    market_cap: float | None = Field(default=None, ge=0)
    volume_24h: float | None = Field(default=None, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
