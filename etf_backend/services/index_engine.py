"""ETF basket valuation.

All functions are pure computation with no I/O. Sums go
through math.fsum over the weight set's own ordering, so results do not
depend on the order of the input mapping.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from etf_backend.schemas.price import AssetQuote
from etf_backend.utils.constants import FALLBACK_BASKET_CHANGE, FALLBACK_BASKET_PRICE


@dataclass(frozen=True)
class BasketWeights:
    """Versioned constituent weights.

    Weights are in [0, 1] and need not sum to 1; the remainder is the
    cash/stable reserve. ``scale_factor`` brings the weighted average to the
    basket's base price (~$100 at reference weights).
    """

    version: int
    weights: Mapping[str, float]
    scale_factor: float

    def __post_init__(self):
        for asset_id, weight in self.weights.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"weight for {asset_id} must be in [0, 1], got {weight}")
        if self.scale_factor <= 0:
            raise ValueError("scale_factor must be positive")
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


DEFAULT_WEIGHTS = BasketWeights(
    version=1,
    weights={
        "bitcoin": 0.40,
        "ethereum": 0.30,
        "solana": 0.15,
        "cardano": 0.10,
        # 5% cash/stablecoins
    },
    scale_factor=2.5,
)


@dataclass(frozen=True)
class BasketValuation:
    price_usd: float
    change_24h: float
    weights_version: int
    constituents: tuple[str, ...] = field(default_factory=tuple)

    @property
    def degraded(self) -> bool:
        """True when no constituent was priced and the fallback was used."""
        return not self.constituents


def basket_price(quotes: Mapping[str, AssetQuote], weights: BasketWeights = DEFAULT_WEIGHTS) -> float:
    """Weighted average of present constituent prices times the scale factor.

    Returns the fallback price when no constituent is present.
    """
    present = [(a, w) for a, w in weights.weights.items() if a in quotes and w > 0]
    total_weight = math.fsum(w for _, w in present)
    if total_weight <= 0:
        return FALLBACK_BASKET_PRICE
    weighted = math.fsum((w / total_weight) * quotes[a].price_usd for a, w in present)
    return weighted * weights.scale_factor


def basket_change(quotes: Mapping[str, AssetQuote], weights: BasketWeights = DEFAULT_WEIGHTS) -> float:
    """Weighted average 24h change over present constituents with a known change.

    Upstream reports a missing change as 0, so zero counts as unknown.
    """
    known = [
        (a, w)
        for a, w in weights.weights.items()
        if a in quotes and quotes[a].change_24h and w > 0
    ]
    total_weight = math.fsum(w for _, w in known)
    if total_weight <= 0:
        return FALLBACK_BASKET_CHANGE
    return math.fsum((w / total_weight) * quotes[a].change_24h for a, w in known)


def compute_basket(
    quotes: Mapping[str, AssetQuote],
    weights: BasketWeights = DEFAULT_WEIGHTS,
) -> BasketValuation:
    """Value the basket from per-asset quotes keyed by CoinGecko id."""
    constituents = tuple(a for a, w in weights.weights.items() if a in quotes and w > 0)
    return BasketValuation(
        price_usd=basket_price(quotes, weights),
        change_24h=basket_change(quotes, weights),
        weights_version=weights.version,
        constituents=constituents,
    )
