"""Portfolio model: derived valuation fields, recomputed after every price sync."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class Portfolio(SQLModel, table=True):
    __tablename__ = "portfolios"

    user_id: int = Field(foreign_key="users.id", primary_key=True)
    total_value_usd: float = 0.0
    total_deposited_usd: float = 0.0
    total_withdrawn_usd: float = 0.0
    all_time_profit_loss: float = 0.0
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
