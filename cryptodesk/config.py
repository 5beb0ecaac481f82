# cryptodesk/config.py
"""
Runtime configuration for Cryptodesk.

Everything comes from the environment (a local .env is honoured) and is
collected into an immutable Settings object that gets passed around
explicitly - nothing here builds engines or caches at import time.
"""

import os
import sys
from dataclasses import dataclass
from decimal import Decimal

from dotenv import load_dotenv
from loguru import logger

DEFAULT_DATABASE_URL = "sqlite:///./cryptodesk.db"
DEFAULT_WITHDRAWAL_FEE_RATE = Decimal("0.14")
DEFAULT_DUST_EPSILON = Decimal("0.00000001")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    withdrawal_fee_rate: Decimal = DEFAULT_WITHDRAWAL_FEE_RATE
    store_timeout: float = 5.0
    price_cache_ttl: float = 600.0
    dust_epsilon: Decimal = DEFAULT_DUST_EPSILON
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            withdrawal_fee_rate=Decimal(os.getenv("WITHDRAWAL_FEE_RATE", str(DEFAULT_WITHDRAWAL_FEE_RATE))),
            store_timeout=float(os.getenv("STORE_TIMEOUT_SECONDS", "5")),
            price_cache_ttl=float(os.getenv("PRICE_CACHE_TTL_SECONDS", "600")),
            dust_epsilon=Decimal(os.getenv("HOLDING_DUST_EPSILON", str(DEFAULT_DUST_EPSILON))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
