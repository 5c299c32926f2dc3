"""Client-side view of crypto_prices kept current from the change stream.

The cache is a display hint only. Anything that needs an authoritative
price (alert evaluation, revaluation) reads the store instead.
"""

from etf_backend.schemas.price import ChangeEvent, ChangeKind, PriceRecord


class ClientPriceCache:
    """symbol -> latest PriceRecord plus the percent move seen on the last update."""

    def __init__(self):
        self._records: dict[str, PriceRecord] = {}
        self._changes: dict[str, float] = {}

    def load_snapshot(self, records: list[PriceRecord]):
        """Replace the view with an authoritative snapshot.

        Recorded deltas survive for symbols still present.
        """
        self._records = {r.symbol: r for r in records}
        self._changes = {s: c for s, c in self._changes.items() if s in self._records}

    def apply(self, event: ChangeEvent):
        """Merge one stream event. Runs to completion without awaiting."""
        if event.type == ChangeKind.DELETE:
            symbol = event.symbol
            self._records.pop(symbol, None)
            self._changes.pop(symbol, None)
            return

        new = event.new
        if new is None:
            return
        existing = self._records.get(new.symbol)
        # First sighting records no delta
        if existing is not None and existing.price_usd:
            self._changes[new.symbol] = (new.price_usd - existing.price_usd) * 100 / existing.price_usd
        self._records[new.symbol] = new

    def get_price(self, symbol: str) -> PriceRecord | None:
        return self._records.get(symbol)

    def get_price_change(self, symbol: str) -> float:
        """Percent move on the last update of ``symbol``; 0 when unknown."""
        return self._changes.get(symbol, 0.0)

    def prices(self) -> list[PriceRecord]:
        return [self._records[s] for s in sorted(self._records)]

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._records
