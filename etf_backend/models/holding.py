"""Holding model: quantity of one asset held by one account."""

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


class Holding(SQLModel, table=True):
    __tablename__ = "holdings"
    __table_args__ = (UniqueConstraint("user_id", "symbol", name="uq_holdings_user_symbol"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    symbol: str  # matches crypto_prices.symbol, e.g. "BTC" or "ETF"
    quantity: float = Field(default=0.0, ge=0)
