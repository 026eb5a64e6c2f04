"""
Per-ticker flow scan: quote + expirations, then the nearest chains, all
fetched concurrently; every contract scored, the survivors ranked.
"""

import asyncio
import logging
from typing import Iterable, List

from optionsentinel.config import FlowConfig
from optionsentinel.core.clock import SystemClock
from optionsentinel.core.models import Contract, ScoredSignal
from optionsentinel.core.registry import SubscriptionRegistry, normalize_tickers
from optionsentinel.core.scoring import FlowScore, score_contract, trade_price

logger = logging.getLogger(__name__)


def by_score(signals: Iterable[ScoredSignal]) -> List[ScoredSignal]:
    return sorted(signals, key=lambda s: s.score, reverse=True)


def to_signal(ticker: str, contract: Contract, result: FlowScore) -> ScoredSignal:
    greeks = contract.greeks
    return ScoredSignal(
        id=contract.symbol,
        ticker=ticker.upper(),
        strike=contract.strike,
        volume=contract.volume or 0,
        open_interest=contract.open_interest or 0,
        expiration=contract.expiration_date,
        cost=trade_price(contract) or None,
        type="Call" if contract.option_type == "call" else "Put",
        sentiment=result.sentiment,
        premium=result.premium,
        score=result.score,
        details=result.details,
        greeks=greeks.model_dump() if greeks else None,
        implied_volatility=greeks.mid_iv if greeks else None,
    )


class FlowScanner:
    """
    Scan Orchestrator.
    Tickers a viewer subscribed to get deeper scans (more expirations) and a
    lower inclusion score than the static defaults.
    """

    def __init__(self, client, registry: SubscriptionRegistry, config: FlowConfig, clock=None) -> None:
        self.client = client
        self.registry = registry
        self.config = config
        self.clock = clock or SystemClock()

    def _depth_and_threshold(self, ticker: str):
        if self.registry.is_active(ticker):
            return self.config.dynamic_expirations, self.config.dynamic_min_score
        return self.config.default_expirations, self.config.default_min_score

    async def scan(self, ticker: str) -> List[ScoredSignal]:
        """Scan one ticker. Never raises; a failure yields []."""
        ticker = ticker.strip().upper()
        try:
            return await self._scan(ticker)
        except Exception as e:
            logger.warning("[scan] %s: %s", ticker, e)
            return []

    async def _scan(self, ticker: str) -> List[ScoredSignal]:
        quote, expirations = await asyncio.gather(
            self.client.get_quote(ticker),
            self.client.get_expirations(ticker),
        )
        if not quote or not expirations:
            return []

        depth, min_score = self._depth_and_threshold(ticker)
        chains = await asyncio.gather(
            *(self.client.get_chain(ticker, exp) for exp in expirations[:depth])
        )

        today = self.clock.today()
        signals = []
        for contract in (c for chain in chains for c in chain):
            result = score_contract(contract, quote, self.config.scoring, today)
            if result.noise or result.score < min_score:
                continue
            signals.append(to_signal(ticker, contract, result))
        return by_score(signals)

    async def scan_many(self, tickers: Iterable[str]) -> List[ScoredSignal]:
        """Scan tickers concurrently and merge into one ranked list."""
        results = await asyncio.gather(*(self.scan(t) for t in normalize_tickers(tickers)))
        return by_score(s for signals in results for s in signals)
