"""
Configuration loading.

Secrets and deployment knobs come from the environment (a `.env` file in the
project root is loaded first). Scanner behaviour comes from `config.yaml`;
when the file is missing the built-in defaults below apply.
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "config.yaml"

PRODUCTION_URL = "https://api.tradier.com/v1"
SANDBOX_URL = "https://sandbox.tradier.com/v1"


class CacheTTL(BaseModel):
    """Seconds each upstream request kind stays cached."""
    quote: float = 10
    expirations: float = 60
    chain: float = 15
    search: float = 30
    history: float = 300


class ScoringConfig(BaseModel):
    """Ticker classes and premium floors used by the flow scorer."""
    etf_tickers: List[str] = Field(default_factory=lambda: ["SPY", "QQQ", "IWM", "DIA"])
    megacap_tickers: List[str] = Field(
        default_factory=lambda: ["AAPL", "MSFT", "NVDA", "AMZN", "META", "GOOGL", "GOOG", "TSLA"]
    )
    etf_min_premium: float = 1_000_000
    megacap_min_premium: float = 100_000
    min_premium: float = 25_000
    urgency_days: int = 7


class FlowConfig(BaseModel):
    """Scan universe, thresholds and timings for the live feed."""
    default_tickers: List[str] = Field(
        default_factory=lambda: ["SPY", "QQQ", "TSLA", "NVDA", "AAPL", "MSFT", "AMZN", "META"]
    )
    max_universe: int = 20
    broadcast_interval_seconds: float = 30
    cache_sweep_interval_seconds: float = 60
    default_expirations: int = 1
    dynamic_expirations: int = 3
    default_min_score: int = 40
    dynamic_min_score: int = 30
    ttl: CacheTTL = Field(default_factory=CacheTTL)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)

    @model_validator(mode="after")
    def defaults_fit_universe(self) -> "FlowConfig":
        if len(set(t.upper() for t in self.default_tickers)) > self.max_universe:
            raise ValueError(
                f"{len(self.default_tickers)} default_tickers exceed max_universe={self.max_universe}"
            )
        return self


class Settings(BaseModel):
    tradier_api_key: str = ""
    tradier_base_url: str = SANDBOX_URL
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    flow: FlowConfig = Field(default_factory=FlowConfig)


def load_flow_config(path: Optional[Path] = None) -> FlowConfig:
    """Parse the YAML scanner config, falling back to defaults."""
    path = Path(path) if path else CONFIG_PATH
    if not path.exists():
        return FlowConfig()
    with open(path, "r") as f:
        raw = yaml.safe_load(f) or {}
    return FlowConfig.model_validate(raw)


def load_settings(config_path: Optional[Path] = None) -> Settings:
    load_dotenv(BASE_DIR / ".env")

    base_url = os.getenv("TRADIER_BASE_URL")
    if not base_url:
        base_url = PRODUCTION_URL if os.getenv("TRADIER_ENV") == "production" else SANDBOX_URL

    config_path = config_path or os.getenv("OPTIONSENTINEL_CONFIG")
    return Settings(
        tradier_api_key=os.getenv("TRADIER_API_KEY", ""),
        tradier_base_url=base_url,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        flow=load_flow_config(config_path),
    )
