"""PriceAlert model: user price thresholds checked by the alert evaluator."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class PriceAlert(SQLModel, table=True):
    __tablename__ = "price_alerts"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    symbol: str = Field(index=True)
    target_price: float
    condition: str  # "above" | "below"
    is_active: bool = True
    triggered_at: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
