"""Price sync cycle.

This is the function APScheduler (and POST /api/prices/sync) calls on each
interval. It orchestrates:
fetch quotes → value basket → upsert prices → revalue portfolios (background).

The cycle holds no lock. Overlapping runs are harmless because every
write is an idempotent upsert; the later commit wins and updated_at tells
readers which snapshot is newest.
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session

from etf_backend.errors import EtfServiceError
from etf_backend.models.sync_log import SyncLog
from etf_backend.schemas.price import AssetQuote, PriceRecord, PriceSyncResponse
from etf_backend.services.coingecko import CoinGeckoAdapter
from etf_backend.services.index_engine import DEFAULT_WEIGHTS, BasketValuation, BasketWeights, compute_basket
from etf_backend.services.portfolio_valuation import RevaluationResult, revalue_active_portfolios
from etf_backend.services.price_store import PriceStore, get_price_store
from etf_backend.services.telegram_notifier import notify
from etf_backend.utils.constants import BASKET_SYMBOL, TRACKED_ASSETS

logger = logging.getLogger(__name__)

# Strong refs so fire-and-forget revaluations are not garbage collected mid-run
_background_tasks: set[asyncio.Task] = set()


def build_records(
    quotes: dict[str, AssetQuote],
    basket: BasketValuation,
    assets: dict[str, str] = TRACKED_ASSETS,
) -> list[PriceRecord]:
    """Turn adapter quotes plus the basket valuation into store rows."""
    records = [
        PriceRecord(
            symbol=symbol,
            price_usd=quotes[asset_id].price_usd,
            price_change_24h=quotes[asset_id].change_24h or 0.0,
            market_cap=quotes[asset_id].market_cap,
            volume_24h=quotes[asset_id].volume_24h,
        )
        for asset_id, symbol in assets.items()
        if asset_id in quotes
    ]
    records.append(PriceRecord(
        symbol=BASKET_SYMBOL,
        price_usd=basket.price_usd,
        price_change_24h=basket.change_24h,
    ))
    return records


async def run_price_sync_cycle(
    adapter: CoinGeckoAdapter | None = None,
    store: PriceStore | None = None,
    weights: BasketWeights = DEFAULT_WEIGHTS,
    revalue: bool = True,
) -> PriceSyncResponse:
    """Execute one sync cycle.

    Raises UpstreamUnavailable before anything is written, or
    PersistenceError if any upsert fails. Portfolio revaluation is launched
    after the prices commit and is not awaited.
    """
    store = store or get_price_store()
    own_adapter = adapter is None
    adapter = adapter or CoinGeckoAdapter()
    started_at = datetime.now(timezone.utc)
    logger.info("Price sync: starting cycle")

    try:
        quotes = await adapter.fetch_prices(list(TRACKED_ASSETS))
        basket = compute_basket(quotes, weights)
        if basket.degraded:
            logger.warning("Price sync: no basket constituent priced, using fallback basket price")
            notify(f"[price_sync] Basket degraded: no constituent prices, ETF set to {basket.price_usd}")

        records = build_records(quotes, basket)
        written = await store.upsert_many(records, as_of=started_at)
    except EtfServiceError as e:
        logger.error(f"Price sync failed: {e.message}")
        notify(f"[price_sync] ERROR: {e.message}")
        log_cycle(store.engine, "error", message=e.message)
        raise
    finally:
        if own_adapter:
            await adapter.close()

    prices = {r.symbol: r.price_usd for r in written}
    logger.info(
        f"Price sync: wrote {len(written)} prices, ETF={basket.price_usd:.4f} "
        f"({basket.change_24h:+.2f}%, weights v{basket.weights_version})"
    )
    log_cycle(
        store.engine,
        "success",
        symbols=len(written),
        basket_price=basket.price_usd,
        message=f"Synced {', '.join(sorted(prices))}",
        details={
            "weights_version": basket.weights_version,
            "constituents": list(basket.constituents),
            "prices": prices,
        },
    )

    if revalue:
        schedule_revaluation(store)

    return PriceSyncResponse(success=True, prices=prices, timestamp=started_at)


def schedule_revaluation(store: PriceStore) -> asyncio.Task:
    """Launch portfolio revaluation in the background and return its task."""
    task = asyncio.get_running_loop().create_task(_revalue(store))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


async def _revalue(store: PriceStore) -> list[RevaluationResult]:
    try:
        prices = await asyncio.to_thread(store.price_map)
        results = await revalue_active_portfolios(store.engine, prices)
    except Exception as e:
        # Per-account errors are already collected; this is a whole-batch failure
        logger.error(f"Revaluation batch failed: {e}", exc_info=True)
        return []
    failed = [r for r in results if not r.success]
    if failed:
        notify(f"[revaluation] {len(failed)} of {len(results)} portfolios failed to update")
    return results


def log_cycle(
    engine: Engine,
    status: str,
    symbols: int | None = None,
    basket_price: float | None = None,
    message: str | None = None,
    details: dict | None = None,
    job: str = "price_sync",
):
    """Write a SyncLog entry through ``engine``."""
    try:
        with Session(engine) as session:
            session.add(SyncLog(
                job=job,
                status=status,
                symbols=symbols,
                basket_price=basket_price,
                message=message,
                details=details,
            ))
            session.commit()
    except Exception as e:
        logger.warning(f"Could not write sync log: {e}")
