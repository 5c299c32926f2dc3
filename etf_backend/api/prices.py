"""Prices API: sync trigger and reads of the durable price table."""

from fastapi import APIRouter, Depends, HTTPException

from etf_backend.api.deps import get_coingecko, get_price_store
from etf_backend.engine.price_sync import run_price_sync_cycle
from etf_backend.schemas.price import PriceRecord, PriceSyncResponse
from etf_backend.services.coingecko import CoinGeckoAdapter
from etf_backend.services.price_store import PriceStore

router = APIRouter(prefix="/api/prices", tags=["prices"])


@router.post("/sync", response_model=PriceSyncResponse)
async def sync_prices(
    store: PriceStore = Depends(get_price_store),
    adapter: CoinGeckoAdapter = Depends(get_coingecko),
):
    """Run one sync cycle now. 502 if CoinGecko fails, 500 if a write fails."""
    return await run_price_sync_cycle(adapter=adapter, store=store)


@router.get("", response_model=list[PriceRecord])
def list_prices(store: PriceStore = Depends(get_price_store)):
    return store.list_prices()


@router.get("/{symbol}", response_model=PriceRecord)
def get_price(symbol: str, store: PriceStore = Depends(get_price_store)):
    record = store.get_price(symbol.upper())
    if record is None:
        raise HTTPException(status_code=404, detail=f"No price for {symbol.upper()}")
    return record


@router.delete("/{symbol}")
async def delete_price(symbol: str, store: PriceStore = Depends(get_price_store)):
    """Administrative removal; connected clients receive a DELETE event."""
    old = await store.delete(symbol.upper())
    if old is None:
        raise HTTPException(status_code=404, detail=f"No price for {symbol.upper()}")
    return {"ok": True}
