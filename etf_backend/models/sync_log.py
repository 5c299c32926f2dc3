"""SyncLog model: one row per scheduled job run."""

from datetime import datetime, timezone
from typing import Any

from sqlmodel import SQLModel, Field, Column
from sqlalchemy import JSON


class SyncLog(SQLModel, table=True):
    __tablename__ = "sync_log"

    id: int | None = Field(default=None, primary_key=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    job: str  # "price_sync", "alert_check"
    status: str  # "success", "error"
    symbols: int | None = None
    basket_price: float | None = None
    message: str | None = None
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
