"""
Liquidity source routing for swap orders.

Quotes are requested from every configured source concurrently and the quote
with the largest net output wins. Sources sit behind ``ILiquiditySource`` so
the stochastic venue simulation and the deterministic test double are
interchangeable.
"""

import asyncio
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from order_engine.core.exceptions import QuoteUnavailableError
from order_engine.core.logger import get_module_logger
from order_engine.orders.models import DexProvider, Order, Quote, SwapResult

CONGESTION_ERROR = "Transaction failed due to network congestion"


class ILiquiditySource(ABC):
    """Interface for a pricing and execution venue."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier reported as ``Quote.provider``."""

    @abstractmethod
    async def get_quote(self, token_in: str, token_out: str, amount_in: float) -> Quote:
        """
        Quote a swap of ``amount_in`` units of ``token_in``.

        Returns:
            Quote: Price with ``amount_out`` already net of fee and impact
        """

    @abstractmethod
    async def execute_swap(self, order: Order, quote: Quote) -> SwapResult:
        """Execute the order against a quote previously issued by this source."""


class MarketConditions:
    """Shared reference price that simulated venues quote around."""

    def __init__(
        self,
        base_price: float = 100.0,
        max_drift: float = 0.02,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.base_price = base_price
        self._max_drift = max_drift
        self._rng = rng or random.Random()

    def update(self) -> float:
        """Apply a random drift of up to +/- ``max_drift`` and return the price."""
        change = (self._rng.random() - 0.5) * 2 * self._max_drift
        self.base_price *= 1 + change
        return self.base_price


@dataclass(frozen=True)
class VenueProfile:
    """
    Pricing and latency characteristics of a simulated venue.

    Attributes:
        provider: Venue identifier
        fee: Fee fraction
        variance_floor: Lowest price multiplier around the base price
        variance_span: Width of the price multiplier range
        quote_latency: Minimum quote latency in seconds
        quote_jitter: Additional random quote latency in seconds
        large_trade_threshold: Amount above which impact increases
        base_impact: Minimum impact for large trades
        impact_span: Random impact range for large trades
        small_impact_span: Random impact range for other trades
    """

    provider: str
    fee: float
    variance_floor: float
    variance_span: float
    quote_latency: float
    quote_jitter: float
    large_trade_threshold: float
    base_impact: float
    impact_span: float
    small_impact_span: float


RAYDIUM_PROFILE = VenueProfile(
    provider=DexProvider.RAYDIUM.value,
    fee=0.003,
    variance_floor=0.98,
    variance_span=0.04,
    quote_latency=0.15,
    quote_jitter=0.1,
    large_trade_threshold=1000.0,
    base_impact=0.001,
    impact_span=0.003,
    small_impact_span=0.001,
)

METEORA_PROFILE = VenueProfile(
    provider=DexProvider.METEORA.value,
    fee=0.002,
    variance_floor=0.97,
    variance_span=0.05,
    quote_latency=0.18,
    quote_jitter=0.12,
    large_trade_threshold=1000.0,
    base_impact=0.0008,
    impact_span=0.002,
    small_impact_span=0.0008,
)


class SimulatedLiquiditySource(ILiquiditySource):
    """Stochastic stand-in for a real venue."""

    def __init__(
        self,
        profile: VenueProfile,
        market: MarketConditions,
        failure_rate: float = 0.05,
        execution_latency: float = 2.0,
        execution_jitter: float = 1.0,
        latency_scale: float = 1.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize simulated venue.

        Args:
            profile: Venue pricing characteristics
            market: Shared market price reference
            failure_rate: Probability that a swap fails with congestion
            execution_latency: Minimum swap latency in seconds
            execution_jitter: Additional random swap latency in seconds
            latency_scale: Multiplier applied to every simulated latency
            rng: Random generator, injectable for reproducible runs
        """
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")

        self._profile = profile
        self._market = market
        self._failure_rate = failure_rate
        self._execution_latency = execution_latency
        self._execution_jitter = execution_jitter
        self._latency_scale = latency_scale
        self._rng = rng or random.Random()

    @property
    def name(self) -> str:
        return self._profile.provider

    async def get_quote(self, token_in: str, token_out: str, amount_in: float) -> Quote:
        profile = self._profile
        await self._sleep(profile.quote_latency + self._rng.random() * profile.quote_jitter)

        variance = profile.variance_floor + self._rng.random() * profile.variance_span
        price = self._market.base_price * variance
        if amount_in > profile.large_trade_threshold:
            impact = profile.base_impact + self._rng.random() * profile.impact_span
        else:
            impact = self._rng.random() * profile.small_impact_span

        return Quote(
            provider=profile.provider,
            price=price,
            fee=profile.fee,
            amount_out=amount_in * price * (1 - profile.fee - impact),
            price_impact=impact,
        )

    async def execute_swap(self, order: Order, quote: Quote) -> SwapResult:
        await self._sleep(
            self._execution_latency + self._rng.random() * self._execution_jitter
        )

        if self._rng.random() < self._failure_rate:
            return SwapResult(success=False, error=CONGESTION_ERROR)

        slippage = self._rng.random() * order.slippage * 0.8
        final_amount = quote.amount_out * (1 - slippage)

        return SwapResult(
            success=True,
            tx_hash=f"{self._rng.getrandbits(256):064x}",
            executed_price=final_amount / float(order.amount_in),
            amount_out=final_amount,
            gas_used=50000 + self._rng.random() * 100000,
        )

    async def _sleep(self, seconds: float) -> None:
        delay = seconds * self._latency_scale
        if delay > 0:
            await asyncio.sleep(delay)


class FixedQuoteSource(ILiquiditySource):
    """Deterministic venue returning preset quotes and swap outcomes."""

    def __init__(
        self,
        provider: str,
        amount_out: float,
        fee: float = 0.0,
        price_impact: float = 0.0,
        swap_results: Optional[Sequence[SwapResult]] = None,
        quote_error: Optional[Exception] = None,
        latency: float = 0.0,
    ) -> None:
        """
        Initialize fixed venue.

        Args:
            provider: Venue identifier
            amount_out: Output amount reported by every quote
            fee: Fee fraction reported by every quote
            price_impact: Impact fraction reported by every quote
            swap_results: Outcomes returned by successive swaps; once exhausted
                swaps fill exactly at the quoted amount
            quote_error: Exception raised by every quote request
            latency: Seconds to wait before answering
        """
        self._provider = provider
        self.amount_out = amount_out
        self._fee = fee
        self._price_impact = price_impact
        self._swap_results = list(swap_results or [])
        self._quote_error = quote_error
        self._latency = latency
        self.quote_calls = 0
        self.swap_calls = 0

    @property
    def name(self) -> str:
        return self._provider

    async def get_quote(self, token_in: str, token_out: str, amount_in: float) -> Quote:
        self.quote_calls += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        if self._quote_error is not None:
            raise self._quote_error

        return Quote(
            provider=self._provider,
            price=self.amount_out / amount_in,
            fee=self._fee,
            amount_out=self.amount_out,
            price_impact=self._price_impact,
        )

    async def execute_swap(self, order: Order, quote: Quote) -> SwapResult:
        self.swap_calls += 1
        if self._latency:
            await asyncio.sleep(self._latency)
        if self._swap_results:
            return self._swap_results.pop(0)

        return SwapResult(
            success=True,
            tx_hash=f"{self._provider}-tx-{self.swap_calls}",
            executed_price=quote.amount_out / float(order.amount_in),
            amount_out=quote.amount_out,
        )


def select_best_quote(quotes: Sequence[Quote]) -> Quote:
    """
    Pick the quote with the greatest ``amount_out``.

    A later quote replaces the current best only when strictly greater, so
    exact ties keep the first quote in source order.

    Raises:
        QuoteUnavailableError: If ``quotes`` is empty
    """
    if not quotes:
        raise QuoteUnavailableError("No liquidity source returned a quote")

    best = quotes[0]
    for quote in quotes[1:]:
        if quote.amount_out > best.amount_out:
            best = quote
    return best


class DexRouter:
    """Fans quote requests out to every source and executes on the winner."""

    def __init__(
        self,
        sources: Sequence[ILiquiditySource],
        market: Optional[MarketConditions] = None,
    ) -> None:
        if not sources:
            raise ValueError("DexRouter requires at least one liquidity source")

        self._sources: Dict[str, ILiquiditySource] = {}
        for source in sources:
            if source.name in self._sources:
                raise ValueError(f"Duplicate liquidity source: {source.name}")
            self._sources[source.name] = source

        self._market = market
        self._logger = get_module_logger("dex_router")

    @property
    def source_names(self) -> List[str]:
        return list(self._sources)

    async def get_quotes(
        self, token_in: str, token_out: str, amount_in: float
    ) -> List[Quote]:
        """
        Request quotes from all sources concurrently.

        Sources that fail are logged and skipped; the result preserves source
        order.

        Raises:
            QuoteUnavailableError: If every source failed
        """
        sources = list(self._sources.values())
        results = await asyncio.gather(
            *(source.get_quote(token_in, token_out, amount_in) for source in sources),
            return_exceptions=True,
        )

        quotes: List[Quote] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                self._logger.warning(f"Quote from {source.name} failed: {result}")
                continue
            quotes.append(result)

        if not quotes:
            raise QuoteUnavailableError(
                f"No quotes available for {token_in}->{token_out}"
            )
        return quotes

    async def get_best_quote(
        self, token_in: str, token_out: str, amount_in: float
    ) -> Tuple[Quote, List[Quote]]:
        quotes = await self.get_quotes(token_in, token_out, amount_in)
        best = select_best_quote(quotes)

        self._logger.info(
            "DEX routing: "
            + ", ".join(
                f"{q.provider} {q.amount_out:.4f} ({q.fee * 100:.2f}%)" for q in quotes
            )
            + f" -> {best.provider}"
        )
        return best, quotes

    async def execute_swap(self, order: Order, quote: Quote) -> SwapResult:
        """Execute on the source that issued ``quote``; failures become results."""
        source = self._sources.get(quote.provider)
        if source is None:
            return SwapResult(
                success=False, error=f"Unknown liquidity source: {quote.provider}"
            )

        self._logger.info(f"Executing on {source.name} for order {order.id}")
        try:
            return await source.execute_swap(order, quote)
        except Exception as e:
            self._logger.error(f"Swap on {source.name} raised for order {order.id}: {e}")
            return SwapResult(success=False, error=str(e))

    def update_market_conditions(self) -> Optional[float]:
        """Drift the shared market price, if this router simulates one."""
        if self._market is None:
            return None
        price = self._market.update()
        self._logger.info(f"Market update: base price {price:.4f}")
        return price


def create_simulated_router(
    failure_rate: float = 0.05,
    latency_scale: float = 1.0,
    base_price: float = 100.0,
    seed: Optional[int] = None,
) -> DexRouter:
    """
    Factory function to create a router over the simulated venues.

    Args:
        failure_rate: Swap congestion failure probability
        latency_scale: Multiplier for every simulated latency
        base_price: Initial market price
        seed: Optional seed for reproducible quotes

    Returns:
        DexRouter: Router over Raydium and Meteora simulations
    """
    rng = random.Random(seed)
    market = MarketConditions(base_price=base_price, rng=rng)
    sources = [
        SimulatedLiquiditySource(
            profile,
            market,
            failure_rate=failure_rate,
            latency_scale=latency_scale,
            rng=rng,
        )
        for profile in (RAYDIUM_PROFILE, METEORA_PROFILE)
    ]
    return DexRouter(sources, market)
