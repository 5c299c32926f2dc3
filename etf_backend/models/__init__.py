"""Database models."""

from etf_backend.models.crypto_price import CryptoPrice
from etf_backend.models.price_alert import PriceAlert
from etf_backend.models.notification import Notification
from etf_backend.models.user import User
from etf_backend.models.holding import Holding
from etf_backend.models.portfolio import Portfolio
from etf_backend.models.sync_log import SyncLog

__all__ = [
    "CryptoPrice",
    "PriceAlert",
    "Notification",
    "User",
    "Holding",
    "Portfolio",
    "SyncLog",
]
