"""Pydantic schemas for price records and change events."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AssetQuote(BaseModel):
    """Normalized quote for one asset as returned by the price source adapter."""

    price_usd: float = Field(ge=0)
    change_24h: float | None = None
    market_cap: float | None = None
    volume_24h: float | None = None


class PriceRecord(BaseModel):
    symbol: str
    price_usd: float
    price_change_24h: float = 0.0
    market_cap: float | None = None
    volume_24h: float | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """Row-level change on crypto_prices.

    INSERT/UPDATE carry the full new row; DELETE carries the old row.
    """

    type: ChangeKind
    new: PriceRecord | None = None
    old: PriceRecord | None = None

    @property
    def symbol(self) -> str:
        row = self.new if self.new is not None else self.old
        return row.symbol


class PriceSyncResponse(BaseModel):
    success: bool
    prices: dict[str, float]
    timestamp: datetime
