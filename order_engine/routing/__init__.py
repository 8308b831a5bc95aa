"""Liquidity routing across swap venues."""

from .dex_router import (
    DexRouter,
    FixedQuoteSource,
    ILiquiditySource,
    MarketConditions,
    SimulatedLiquiditySource,
    create_simulated_router,
    select_best_quote,
)

__all__ = [
    "DexRouter",
    "FixedQuoteSource",
    "ILiquiditySource",
    "MarketConditions",
    "SimulatedLiquiditySource",
    "create_simulated_router",
    "select_best_quote",
]
