import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

import requests

from app.schemas import PriceQuote
from app.services.symbol_mapper import SymbolMapper


COINGECKO_BASE_URL = 'https://api.coingecko.com/api/v3'


class CoinGeckoClient:
    def __init__(self, base_url: str = COINGECKO_BASE_URL, timeout: float = 10.0,
                 mapper: Optional[SymbolMapper] = None, session: Optional[requests.Session] = None):
        self.logger = logging.getLogger(__name__ + '.CoinGeckoClient')
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.mapper = mapper or SymbolMapper.coingecko()
        self.session = session or requests.Session()

    def fetch_quote(self, symbol: str) -> PriceQuote:
        """Raises LookupError for unmapped or missing symbols, requests errors on transport failure."""
        coin_id = self.mapper.to_external(symbol)
        if not coin_id:
            raise LookupError(f"No CoinGecko id for {symbol}")

        response = self.session.get(
            f"{self.base_url}/simple/price",
            params={'ids': coin_id, 'vs_currencies': 'usd', 'include_24hr_change': 'true'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()
        price_data = data.get(coin_id) if isinstance(data, dict) else None
        if not isinstance(price_data, dict) or price_data.get('usd') is None:
            raise LookupError(f"No price data returned for {symbol}")

        return PriceQuote(
            current_price=float(price_data['usd']),
            price_change_24h=float(price_data.get('usd_24h_change') or 0),
            last_updated=datetime.now(),
        )

    def close(self):
        self.session.close()


@dataclass
class CacheEntry:
    data: PriceQuote
    inserted_at: float


class PriceCache:
    """Symbol -> quote cache with a fixed TTL, checked lazily on read."""

    def __init__(self, client: CoinGeckoClient, ttl_seconds: float = 300.0,
                 clock: Callable[[], float] = time.monotonic):
        self.logger = logging.getLogger(__name__ + '.PriceCache')
        self.client = client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._cache_lock = threading.Lock()

    def get(self, symbol: str) -> Optional[PriceQuote]:
        key = symbol.strip().upper()
        with self._cache_lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if self._clock() - entry.inserted_at < self.ttl_seconds:
                return entry.data
            del self._cache[key]
            return None

    def put(self, symbol: str, quote: PriceQuote) -> None:
        with self._cache_lock:
            self._cache[symbol.strip().upper()] = CacheEntry(data=quote, inserted_at=self._clock())

    def get_or_fetch(self, symbol: str) -> PriceQuote:
        cached = self.get(symbol)
        if cached is not None:
            return cached

        try:
            quote = self.client.fetch_quote(symbol)
        except (requests.RequestException, LookupError, ValueError) as exc:
            self.logger.error(f"Failed to fetch price for {symbol}: {exc}")
            return PriceQuote(current_price=0.0, price_change_24h=0.0, last_updated=datetime.now())

        self.put(symbol, quote)
        return quote

    def get_batch(self, symbols: Iterable[str]) -> Dict[str, PriceQuote]:
        results: Dict[str, PriceQuote] = {}
        for symbol in symbols:
            key = symbol.strip().upper()
            if not key or key in results:
                continue
            results[key] = self.get_or_fetch(key)
        return results

    def clear(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    def status(self) -> Dict[str, Dict[str, object]]:
        now = self._clock()
        with self._cache_lock:
            return {
                key: {'age': round(now - entry.inserted_at), 'valid': now - entry.inserted_at < self.ttl_seconds}
                for key, entry in self._cache.items()
            }

    def __len__(self) -> int:
        with self._cache_lock:
            return len(self._cache)
