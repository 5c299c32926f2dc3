"""Durable price store (crypto_prices) with change publication.

Every write is a single-statement upsert keyed on symbol, so a row is
never visible half-written and re-running a cycle is harmless. Each
committed write is published to the change feed as INSERT/UPDATE/DELETE.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from etf_backend.errors import PersistenceError
from etf_backend.models.crypto_price import CryptoPrice
from etf_backend.schemas.price import ChangeEvent, ChangeKind, PriceRecord
from etf_backend.services.change_feed import PriceChangeFeed

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class PriceStore:
    """Read/write access to crypto_prices for the sync cycle and the API."""

    def __init__(self, engine: Engine, feed: PriceChangeFeed | None = None):
        self.engine = engine
        self.feed = feed
        # Held across write and publish so one symbol's events leave in commit order.
        # Only orders writers within this process.
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_many(self, records: list[PriceRecord], as_of: datetime) -> list[PriceRecord]:
        """Upsert all records concurrently, each stamped with ``as_of``.

        Raises PersistenceError naming the failed symbols if any upsert
        fails. Rows that succeeded stay written.
        """
        stamped = [r.model_copy(update={"updated_at": as_of}) for r in records]
        results = await asyncio.gather(
            *(self._upsert_and_publish(r) for r in stamped),
            return_exceptions=True,
        )

        failed: list[str] = []
        written: list[PriceRecord] = []
        for record, result in zip(stamped, results):
            if isinstance(result, BaseException):
                logger.error(f"Upsert failed for {record.symbol}: {result}")
                failed.append(record.symbol)
            else:
                written.append(result)

        if failed:
            raise PersistenceError(
                f"Failed to write {len(failed)} of {len(stamped)} prices: {', '.join(failed)}",
                failed=failed,
            )
        return written

    async def upsert(self, record: PriceRecord) -> PriceRecord:
        return await self._upsert_and_publish(record)

    async def delete(self, symbol: str) -> PriceRecord | None:
        """Remove a symbol's row. Returns the deleted row, or None if absent."""
        async with self._locks[symbol]:
            old = await asyncio.to_thread(self._delete_row, symbol)
            if old is not None and self.feed is not None:
                self.feed.publish(ChangeEvent(type=ChangeKind.DELETE, old=old))
        return old

    async def _upsert_and_publish(self, record: PriceRecord) -> PriceRecord:
        async with self._locks[record.symbol]:
            kind, row = await asyncio.to_thread(self._upsert_row, record)
            if self.feed is not None:
                self.feed.publish(ChangeEvent(type=kind, new=row))
        return row

    def _upsert_row(self, record: PriceRecord) -> tuple[ChangeKind, PriceRecord]:
        values = record.model_dump()
        if values["updated_at"] is None:
            values["updated_at"] = datetime.now(timezone.utc)
        with Session(self.engine) as session:
            existed = session.get(CryptoPrice, record.symbol) is not None
            insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
            if insert is not None:
                stmt = insert(CryptoPrice).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["symbol"],
                    set_={k: v for k, v in values.items() if k != "symbol"},
                )
                session.exec(stmt)
            else:
                session.merge(CryptoPrice(**values))
            session.commit()
            row = session.get(CryptoPrice, record.symbol, populate_existing=True)
            written = PriceRecord.model_validate(row)
        return (ChangeKind.UPDATE if existed else ChangeKind.INSERT), written

    def _delete_row(self, symbol: str) -> PriceRecord | None:
        with Session(self.engine) as session:
            row = session.get(CryptoPrice, symbol)
            if row is None:
                return None
            old = PriceRecord.model_validate(row)
            session.delete(row)
            session.commit()
        logger.info(f"Deleted price row {symbol}")
        return old

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_prices(self) -> list[PriceRecord]:
        with Session(self.engine) as session:
            rows = session.exec(select(CryptoPrice).order_by(CryptoPrice.symbol)).all()
            return [PriceRecord.model_validate(r) for r in rows]

    def get_price(self, symbol: str) -> PriceRecord | None:
        with Session(self.engine) as session:
            row = session.get(CryptoPrice, symbol)
            return PriceRecord.model_validate(row) if row else None

    def price_map(self, symbols: list[str] | None = None) -> dict[str, float]:
        """symbol -> price_usd, optionally restricted to ``symbols``."""
        stmt = select(CryptoPrice.symbol, CryptoPrice.price_usd)
        if symbols is not None:
            stmt = stmt.where(CryptoPrice.symbol.in_(symbols))
        with Session(self.engine) as session:
            return {symbol: price for symbol, price in session.exec(stmt).all()}

    def latest_snapshot_time(self) -> datetime | None:
        """updated_at of the newest sync cycle."""
        with Session(self.engine) as session:
            return session.exec(select(func.max(CryptoPrice.updated_at))).one()


_store_instance: PriceStore | None = None


def get_price_store() -> PriceStore:
    """Process-wide store bound to the app engine and the shared change feed."""
    global _store_instance
    if _store_instance is None:
        from etf_backend.database import engine
        from etf_backend.services.change_feed import price_feed

        _store_instance = PriceStore(engine, price_feed)
    return _store_instance
