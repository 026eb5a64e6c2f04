"""
Reference-counted set of tickers that connected viewers asked to follow.

Two viewers following TSLA keep it active until both have left: every
viewer contributes its ticker set through transition(old, new), and a
ticker is dropped only when its count returns to zero.
"""

import logging
from typing import Dict, Iterable, List

logger = logging.getLogger(__name__)


def normalize_tickers(tickers: Iterable[str]) -> List[str]:
    """Strip, uppercase and de-duplicate, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for t in tickers:
        t = (t or "").strip().upper()
        if t:
            seen.setdefault(t, None)
    return list(seen)


class SubscriptionRegistry:

    def __init__(self, default_tickers: Iterable[str], max_universe: int = 20) -> None:
        self.default_tickers = normalize_tickers(default_tickers)
        self.max_universe = max_universe
        self._counts: Dict[str, int] = {}

    def add_subscriber(self, ticker: str) -> None:
        ticker = ticker.upper()
        self._counts[ticker] = self._counts.get(ticker, 0) + 1

    def remove_subscriber(self, ticker: str) -> None:
        ticker = ticker.upper()
        count = self._counts.get(ticker, 0) - 1
        if count > 0:
            self._counts[ticker] = count
        else:
            self._counts.pop(ticker, None)

    def transition(self, old: Iterable[str], new: Iterable[str]) -> None:
        """Apply a viewer moving from ticker set `old` to `new`."""
        old_list, new_list = normalize_tickers(old), normalize_tickers(new)
        for ticker in old_list:
            if ticker not in new_list:
                self.remove_subscriber(ticker)
        for ticker in new_list:
            if ticker not in old_list:
                self.add_subscriber(ticker)
        logger.debug("registry now tracking %s", self.counts())

    def is_active(self, ticker: str) -> bool:
        return self.count(ticker) > 0

    def count(self, ticker: str) -> int:
        return self._counts.get(ticker.upper(), 0)

    def counts(self) -> Dict[str, int]:
        return dict(self._counts)

    def active_tickers(self) -> List[str]:
        return [t for t, c in self._counts.items() if c > 0]

    def current_universe(self) -> List[str]:
        """Defaults first, then viewer tickers, capped at max_universe.

        Defaults are never cut; only dynamic tickers are truncated.
        """
        universe = list(self.default_tickers)
        room = max(0, self.max_universe - len(universe))
        extras = [t for t in self.active_tickers() if t not in universe]
        return universe + extras[:room]
