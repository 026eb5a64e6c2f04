"""
Data models for the flow engine.
Upstream snapshots (Quote, Contract, Security, HistoryBar) keep every field
the provider sends; outbound shapes (ScoredSignal, FlowUpdate) serialize
with camelCase aliases for the mobile client.
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class UpstreamModel(BaseModel):
    """Provider payloads: tolerate and retain unknown fields."""
    model_config = ConfigDict(extra="allow")


class OutboundModel(BaseModel):
    """Payloads sent to viewers, serialized by alias."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Quote(UpstreamModel):
    """Underlying security snapshot from /markets/quotes."""
    symbol: str = Field(..., description="Ticker symbol")
    last: Optional[float] = Field(None, description="Last trade price")
    change: Optional[float] = None
    change_percentage: Optional[float] = None
    volume: Optional[int] = None
    average_volume: Optional[int] = Field(None, description="Average daily volume")
    description: Optional[str] = None
    open: Optional[float] = None
    high: Optional[float] = Field(None, description="Day high")
    low: Optional[float] = Field(None, description="Day low")
    prevclose: Optional[float] = Field(None, description="Previous close")


class Greeks(UpstreamModel):
    delta: Optional[float] = None
    gamma: Optional[float] = None
    theta: Optional[float] = None
    vega: Optional[float] = None
    mid_iv: Optional[float] = Field(None, description="Implied volatility at mid")


class Contract(UpstreamModel):
    """One option instance from /markets/options/chains."""
    symbol: str = Field(..., description="OCC option symbol")
    underlying: Optional[str] = None
    strike: float
    option_type: Literal["call", "put"]
    expiration_date: date
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = None
    volume: Optional[int] = 0
    open_interest: Optional[int] = 0
    greeks: Optional[Greeks] = None


class Security(UpstreamModel):
    """Symbol lookup result from /markets/lookup."""
    symbol: str
    type: Optional[str] = None
    description: Optional[str] = None
    exchange: Optional[str] = None


class HistoryBar(UpstreamModel):
    date: date
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[int] = None


class QuoteSummary(OutboundModel):
    ticker: str
    price: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    description: Optional[str] = None
    volume: Optional[int] = None
    average_volume: Optional[int] = None
    high: Optional[float] = None
    low: Optional[float] = None
    open: Optional[float] = None
    prevclose: Optional[float] = None

    @classmethod
    def from_quote(cls, quote: Quote) -> "QuoteSummary":
        return cls(
            ticker=quote.symbol,
            price=quote.last,
            change=quote.change,
            change_percent=quote.change_percentage,
            description=quote.description,
            volume=quote.volume,
            average_volume=quote.average_volume,
            high=quote.high,
            low=quote.low,
            open=quote.open,
            prevclose=quote.prevclose,
        )


class FlowDetails(OutboundModel):
    """Display-only breakdown of how a contract scored."""
    premium: str = Field(..., description="Formatted premium, e.g. $1.25M")
    ratio: str = Field(..., description="Volume / open interest, 2 decimals")
    days_to_expiry: int


class ScoredSignal(OutboundModel):
    """A contract that survived scoring. Rebuilt from scratch every cycle."""
    id: str = Field(..., description="Contract symbol")
    ticker: str
    strike: float
    volume: int
    open_interest: int
    expiration: date
    cost: Optional[float] = None
    type: Literal["Call", "Put"]
    sentiment: str
    premium: float = Field(..., description="Premium in USD")
    score: int = Field(..., ge=0, le=100)
    details: FlowDetails
    greeks: Optional[Dict[str, Any]] = None
    implied_volatility: Optional[float] = None


class FlowStats(OutboundModel):
    scanning: int = Field(..., description="Tickers scanned this cycle")
    results: int = Field(..., description="Signals returned this cycle")


class FlowUpdate(OutboundModel):
    type: Literal["flow_update"] = "flow_update"
    data: List[ScoredSignal]
    timestamp: int = Field(..., description="Epoch milliseconds")
    stats: FlowStats


class SubscribeMessage(BaseModel):
    """Inbound push-channel request to track custom tickers."""
    type: Literal["subscribe"]
    tickers: List[str]
    elevated: bool = False


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str
