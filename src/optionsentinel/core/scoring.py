"""
Unusual-flow scoring.

Each contract is scored 0-100 from four independent components:

  premium intensity   up to 40  (dollar size of today's prints)
  volume / OI ratio   up to 30  (new positioning vs. existing)
  aggression          20        (traded at or above the bid/ask mid)
  urgency             10        (expires within a week)

Contracts whose premium is below the floor for their underlying's class
(broad-market ETF, mega-cap, everything else) are noise and score 0.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from optionsentinel.config import ScoringConfig
from optionsentinel.core.models import Contract, FlowDetails, Quote

CONTRACT_MULTIPLIER = 100

# (minimum, points), checked top-down
PREMIUM_TIERS = ((1_000_000, 40), (500_000, 30), (100_000, 20), (50_000, 10))
RATIO_TIERS = ((5, 30), (2, 20), (1, 10))
AGGRESSION_POINTS = 20
URGENCY_POINTS = 10

BULLISH = "Bullish"
BEARISH = "Bearish"
BULLISH_SELL = "Bullish (Sell)"
BEARISH_SELL = "Bearish (Sell)"


@dataclass(frozen=True)
class FlowScore:
    score: int
    premium: float
    sentiment: Optional[str] = None
    details: Optional[FlowDetails] = None
    noise: bool = False


def trade_price(contract: Contract) -> float:
    """Last trade, or the ask if the contract has not traded yet."""
    return contract.last or contract.ask or 0.0


def premium_of(contract: Contract) -> float:
    return (contract.volume or 0) * trade_price(contract) * CONTRACT_MULTIPLIER


def premium_floor(ticker: str, config: ScoringConfig) -> float:
    ticker = ticker.upper()
    if ticker in config.etf_tickers:
        floor = config.etf_min_premium
    elif ticker in config.megacap_tickers:
        floor = config.megacap_min_premium
    else:
        floor = config.min_premium
    return max(floor, config.min_premium)


def _tier_points(value: float, tiers) -> int:
    for minimum, points in tiers:
        if value >= minimum:
            return points
    return 0


def premium_points(premium: float) -> int:
    return _tier_points(premium, PREMIUM_TIERS)


def ratio_points(ratio: float) -> int:
    return _tier_points(ratio, RATIO_TIERS)


def is_aggressive(contract: Contract) -> bool:
    """True when the print happened at or above the bid/ask midpoint."""
    if contract.bid is None or contract.ask is None:
        return False
    mid = (contract.bid + contract.ask) / 2
    return trade_price(contract) >= mid


def sentiment_for(option_type: str, aggressive: bool) -> str:
    if option_type == "call":
        return BULLISH if aggressive else BEARISH_SELL
    return BEARISH if aggressive else BULLISH_SELL


def format_premium(premium: float) -> str:
    if premium >= 1_000_000:
        return f"${premium / 1_000_000:.2f}M"
    if premium >= 1_000:
        return f"${premium / 1_000:.1f}K"
    return f"${premium:.0f}"


def score_contract(contract: Contract, quote: Quote, config: ScoringConfig, today: date) -> FlowScore:
    premium = premium_of(contract)
    if premium < premium_floor(quote.symbol, config):
        return FlowScore(score=0, premium=premium, noise=True)

    volume = contract.volume or 0
    ratio = volume / max(contract.open_interest or 0, 1)
    days_out = (contract.expiration_date - today).days
    aggressive = is_aggressive(contract)

    score = premium_points(premium) + ratio_points(ratio)
    if aggressive:
        score += AGGRESSION_POINTS
    if days_out <= config.urgency_days:
        score += URGENCY_POINTS

    return FlowScore(
        score=max(0, min(100, score)),
        premium=premium,
        sentiment=sentiment_for(contract.option_type, aggressive),
        details=FlowDetails(
            premium=format_premium(premium),
            ratio=f"{ratio:.2f}",
            days_to_expiry=days_out,
        ),
    )
