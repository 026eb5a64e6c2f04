"""
Pytest configuration and shared fixtures for the flow engine tests.

Usage:
    @pytest.fixture functions are automatically available to all tests.
    Import helpers from conftest when needed.
"""
import sys
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.websockets import WebSocketState


def pytest_configure():
    """
    Ensure `src/` is on sys.path for the src-layout package import (`optionsentinel`).
    This keeps tests runnable without requiring an editable install.
    """
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if src.exists():
        sys.path.insert(0, str(src))


TODAY = date(2026, 1, 5)


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Deterministic clock; advance() moves wall time forward."""

    def __init__(self, now: float = 1_767_600_000.0, today: date = TODAY):
        self._now = now
        self._today = today

    def now(self) -> float:
        return self._now

    def today(self) -> date:
        return self._today

    def advance(self, seconds: float) -> None:
        self._now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Upstream data helpers
# =============================================================================

def make_quote(symbol: str = "PLTR", last: float = 100.0, **extra):
    from optionsentinel.core.models import Quote

    return Quote(symbol=symbol, last=last, average_volume=1_000_000, description=f"{symbol} Inc", **extra)


def make_contract(
    symbol: str = "PLTR260110C00100000",
    *,
    option_type: str = "call",
    strike: float = 100.0,
    days_out: int = 5,
    volume: int = 600,
    open_interest: int = 100,
    last: Optional[float] = 5.0,
    bid: Optional[float] = 4.8,
    ask: Optional[float] = 5.2,
    mid_iv: Optional[float] = None,
):
    """
    Create a Contract for testing.

    Defaults: $300K premium, vol/OI 6, traded at the ask, 5 days out.
    """
    from optionsentinel.core.models import Contract

    greeks = {"delta": 0.5, "mid_iv": mid_iv} if mid_iv is not None else None
    return Contract(
        symbol=symbol,
        strike=strike,
        option_type=option_type,
        expiration_date=TODAY + timedelta(days=days_out),
        bid=bid,
        ask=ask,
        last=last,
        volume=volume,
        open_interest=open_interest,
        greeks=greeks,
    )


# =============================================================================
# Fake Tradier client
# =============================================================================

class FakeTradierClient:
    """In-memory stand-in for TradierClient; records every call."""

    def __init__(self):
        self.quotes: Dict[str, object] = {}
        self.expirations: Dict[str, List[str]] = {}
        self.chains: Dict[Tuple[str, str], list] = {}
        self.failing: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    def add_ticker(self, ticker: str, contracts_by_exp: Dict[str, list], last: float = 100.0):
        self.quotes[ticker] = make_quote(ticker, last)
        self.expirations[ticker] = sorted(contracts_by_exp)
        for exp, contracts in contracts_by_exp.items():
            self.chains[(ticker, exp)] = contracts

    def _check(self, ticker: str):
        if ticker in self.failing:
            raise self.failing[ticker]

    async def get_quote(self, ticker):
        self.calls.append(("quote", ticker))
        self._check(ticker)
        return self.quotes.get(ticker)

    async def get_expirations(self, ticker):
        self.calls.append(("expirations", ticker))
        self._check(ticker)
        return list(self.expirations.get(ticker, []))

    async def get_chain(self, ticker, expiration):
        self.calls.append(("chain", f"{ticker}:{expiration}"))
        self._check(ticker)
        return list(self.chains.get((ticker, expiration), []))

    async def get_chain_raw(self, ticker, expiration):
        contracts = await self.get_chain(ticker, expiration)
        return [c.model_dump(mode="json") for c in contracts]

    async def search(self, query):
        from optionsentinel.core.models import Security

        self.calls.append(("search", query))
        return [Security(symbol="TSLA", type="stock", description="Tesla Inc")]

    async def get_history(self, ticker, start):
        from optionsentinel.core.models import HistoryBar

        self.calls.append(("history", f"{ticker}:{start.isoformat()}"))
        self._check(ticker)
        return [HistoryBar(date=start, open=1, high=2, low=0.5, close=1.5, volume=100)]

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client() -> FakeTradierClient:
    return FakeTradierClient()


@pytest.fixture
def flow_config():
    from optionsentinel.config import FlowConfig

    return FlowConfig(default_tickers=["SPY", "AAPL"])


# =============================================================================
# Fake WebSocket transport
# =============================================================================

class FakeSocket:
    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: List[str] = []
        self.fail = fail

    def disconnect(self):
        self.client_state = WebSocketState.DISCONNECTED

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket exploded")
        self.sent.append(text)
