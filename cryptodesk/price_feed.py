# cryptodesk/price_feed.py
"""
Quote prices used when a transaction request arrives without one.

- StaticPriceSource: fixed table, for tests and demos
- DatabasePriceSource: last price stored on the Asset row
- CachedPriceSource: wraps any source with a per-asset TTL

Caches are plain instances handed to whoever needs them; there is no
shared module-level price table.
"""

import time
from decimal import Decimal
from typing import Callable, Dict, Protocol, Tuple

from loguru import logger
from sqlalchemy.orm import sessionmaker

from cryptodesk.db import session_scope
from cryptodesk.directory import UserDirectory
from cryptodesk.errors import NotFoundError
from cryptodesk.utils import to_decimal


class PriceSource(Protocol):
    def quote(self, asset_id: str) -> Decimal:
        ...


class StaticPriceSource:
    def __init__(self, prices: Dict[str, object]):
        self.prices = {asset_id: to_decimal(p, "price") for asset_id, p in prices.items()}

    def quote(self, asset_id: str) -> Decimal:
        try:
            return self.prices[asset_id]
        except KeyError:
            raise NotFoundError(f"No price for {asset_id}")


class DatabasePriceSource:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def quote(self, asset_id: str) -> Decimal:
        with session_scope(self.session_factory) as db:
            asset = UserDirectory(db).get_asset(asset_id)
            if asset.current_price is None:
                raise NotFoundError(f"No price for {asset_id}")
            return Decimal(asset.current_price)


class CachedPriceSource:
    def __init__(self, source: PriceSource, ttl: float = 600.0, clock: Callable[[], float] = time.monotonic):
        self.source = source
        self.ttl = ttl
        self.clock = clock
        self._cache: Dict[str, Tuple[Decimal, float]] = {}

    def quote(self, asset_id: str) -> Decimal:
        now = self.clock()
        cached = self._cache.get(asset_id)
        if cached and now - cached[1] < self.ttl:
            return cached[0]

        price = self.source.quote(asset_id)
        self._cache[asset_id] = (price, now)
        logger.debug(f"Price refreshed: {asset_id}={price}")
        return price

    def invalidate(self, asset_id: str = None) -> None:
        if asset_id is None:
            self._cache.clear()
        else:
            self._cache.pop(asset_id, None)
