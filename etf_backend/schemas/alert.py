"""Pydantic schemas for price alerts API."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator


class PriceAlertCreate(BaseModel):
    user_id: int = Field(gt=0)
    symbol: str = Field(min_length=1, max_length=16)
    target_price: float = Field(gt=0)
    condition: Literal["above", "below"]

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text


class PriceAlertRead(BaseModel):
    id: int
    user_id: int
    symbol: str
    target_price: float
    condition: str
    is_active: bool
    triggered_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class EvaluateRequest(BaseModel):
    user_id: int | None = Field(default=None, alias="userId")
    dry_run: bool = Field(default=False, alias="dryRun")

    model_config = {"populate_by_name": True}


class EvaluateResult(BaseModel):
    evaluated: int
    triggered: int
