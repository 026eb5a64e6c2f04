import aiohttp
import logging
from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from optionsentinel.core.cache import ExpiringCache
from optionsentinel.core.errors import UpstreamError
from optionsentinel.core.models import Contract, HistoryBar, Quote, Security
from optionsentinel.config import CacheTTL, SANDBOX_URL

logger = logging.getLogger(__name__)

SEARCHABLE_TYPES = {"stock", "etf"}


def ensure_list(obj: Any) -> List[Any]:
    """Tradier returns a bare object for single results and null for none."""
    if not obj:
        return []
    return obj if isinstance(obj, list) else [obj]


def _dig(data: Optional[Dict[str, Any]], *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def request_key(path: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Cache key and error label for one upstream request."""
    if not params:
        return path
    return f"{path}?{urlencode(sorted(params.items()))}"


class TradierClient:
    """
    Async client for the Tradier market-data API.
    Requests made with a TTL read and write through the shared ExpiringCache,
    so repeated scans inside the TTL never reach the network.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = SANDBOX_URL,
        cache: Optional[ExpiringCache] = None,
        ttl: Optional[CacheTTL] = None,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else ExpiringCache()
        self.ttl = ttl or CacheTTL()
        self._headers = {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "TradierClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers, timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(self, path: str, params: Dict[str, Any]) -> Any:
        session = self._get_session()
        async with session.get(f"{self.base_url}{path}", params=params) as response:
            if response.status >= 400:
                raise UpstreamError(response.status, request_key(path, params))
            return await response.json(content_type=None)

    async def fetch(self, path: str, params: Optional[Dict[str, Any]] = None, ttl: Optional[float] = None) -> Any:
        """GET `path`, going through the cache when a TTL is given."""
        params = params or {}
        key = request_key(path, params)
        if ttl:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        data = await self._request(path, params)
        if ttl and data is not None:
            self.cache.set(key, data, ttl)
        return data

    # --- Typed endpoints ---

    async def get_quote(self, ticker: str) -> Optional[Quote]:
        """Return the quote for `ticker`, or None if the symbol is unknown."""
        data = await self.fetch("/markets/quotes", {"symbols": ticker.upper()}, ttl=self.ttl.quote)
        quotes = [q for q in ensure_list(_dig(data, "quotes", "quote")) if q]
        if not quotes:
            return None
        return Quote.model_validate(quotes[0])

    async def get_expirations(self, ticker: str) -> List[str]:
        data = await self.fetch(
            "/markets/options/expirations", {"symbol": ticker.upper()}, ttl=self.ttl.expirations
        )
        return sorted(ensure_list(_dig(data, "expirations", "date")))

    async def get_chain_raw(self, ticker: str, expiration: str) -> List[Dict[str, Any]]:
        data = await self.fetch(
            "/markets/options/chains",
            {"symbol": ticker.upper(), "expiration": expiration, "greeks": "true"},
            ttl=self.ttl.chain,
        )
        return ensure_list(_dig(data, "options", "option"))

    async def get_chain(self, ticker: str, expiration: str) -> List[Contract]:
        return [Contract.model_validate(c) for c in await self.get_chain_raw(ticker, expiration)]

    async def search(self, query: str) -> List[Security]:
        """Symbol lookup restricted to stocks and ETFs."""
        data = await self.fetch("/markets/lookup", {"q": query}, ttl=self.ttl.search)
        return [
            Security.model_validate(s)
            for s in ensure_list(_dig(data, "securities", "security"))
            if s.get("type") in SEARCHABLE_TYPES
        ]

    async def get_history(self, ticker: str, start: date) -> List[HistoryBar]:
        data = await self.fetch(
            "/markets/history",
            {"symbol": ticker.upper(), "interval": "daily", "start": start.isoformat()},
            ttl=self.ttl.history,
        )
        return [HistoryBar.model_validate(d) for d in ensure_list(_dig(data, "history", "day"))]
