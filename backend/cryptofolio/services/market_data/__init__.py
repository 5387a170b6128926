# backend/cryptofolio/services/market_data/__init__.py
"""
Price oracle package.

This package contains:
- Abstract interface for price oracles (base.py)
- CoinGecko implementation (coingecko.py)
- Price cache and caching decorator (cache.py)

Usage:
    from cryptofolio.services.market_data import (
        CachedPriceOracle,
        CoinGeckoPriceOracle,
        PriceCache,
    )

    cache = PriceCache()
    oracle = CachedPriceOracle(CoinGeckoPriceOracle(), cache)

Architecture:
    PriceOracle (ABC)
    ├── CoinGeckoPriceOracle (concrete, httpx)
    └── CachedPriceOracle (decorator, wraps any PriceOracle)
"""

from cryptofolio.services.market_data.base import CurrentPrice, PriceOracle
from cryptofolio.services.market_data.cache import CachedPriceOracle, PriceCache
from cryptofolio.services.market_data.coingecko import CoinGeckoPriceOracle, RequestThrottle

__all__ = [
    # Interface
    "PriceOracle",
    "CurrentPrice",
    # Providers
    "CoinGeckoPriceOracle",
    "RequestThrottle",
    # Caching
    "CachedPriceOracle",
    "PriceCache",
]
