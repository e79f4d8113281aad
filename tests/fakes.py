import json
import threading
from datetime import datetime, timedelta
from decimal import Decimal

import requests

from app.schemas import PriceQuote, Ticker24h


def raw_ticker(symbol, price, change_pct='0', change='0', volume='0', quote_volume='0'):
    return {
        'symbol': symbol,
        'lastPrice': str(price),
        'priceChangePercent': str(change_pct),
        'priceChange': str(change),
        'volume': str(volume),
        'quoteVolume': str(quote_volume),
        'openTime': 1700000000000,
    }


def ticker(symbol, price, change_pct='0', change='0', volume='0', quote_volume='0'):
    return Ticker24h.model_validate(raw_ticker(symbol, price, change_pct, change, volume, quote_volume))


class FakeClock:
    def __init__(self, start=datetime(2026, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Stands in for requests.Session; ``handler(url, params, timeout)`` builds each response."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append({'url': url, 'params': dict(params or {}), 'timeout': timeout})
        return self.handler(url, params or {}, timeout)

    def close(self):
        self.closed = True


class BinanceStub:
    """Serves ticker/24hr for a fixed price table and rejects unknown pairs like Binance does."""

    def __init__(self, prices, fail_batches_containing=()):
        self.prices = prices
        self.fail_batches_containing = set(fail_batches_containing)

    def __call__(self, url, params, timeout):
        if 'symbols' in params:
            symbols = json.loads(params['symbols'])
            if self.fail_batches_containing.intersection(symbols):
                raise requests.Timeout("read timed out")
            if any(s not in self.prices for s in symbols):
                return FakeResponse(400, {'code': -1121, 'msg': 'Invalid symbol.'})
            return FakeResponse(200, [raw_ticker(s, self.prices[s]) for s in symbols])
        symbol = params['symbol']
        if symbol not in self.prices:
            return FakeResponse(400, {'code': -1121, 'msg': 'Invalid symbol.'})
        return FakeResponse(200, raw_ticker(symbol, self.prices[symbol]))


class FakeFetcher:
    def __init__(self, tickers=None):
        self.tickers = list(tickers or [])
        self.calls = []

    def fetch_tickers(self, pairs):
        self.calls.append(list(pairs))
        return list(self.tickers)


class BlockingFetcher(FakeFetcher):
    """Holds a cycle open until ``release`` is set, once ``block`` is switched on."""

    def __init__(self, tickers=None):
        super().__init__(tickers)
        self.block = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_tickers(self, pairs):
        if self.block:
            self.entered.set()
            self.release.wait(5)
        return super().fetch_tickers(pairs)


class StubQuoteClient:
    def __init__(self, prices, failing=()):
        self.prices = prices
        self.failing = set(failing)
        self.calls = []

    def fetch_quote(self, symbol):
        symbol = symbol.upper()
        self.calls.append(symbol)
        if symbol in self.failing:
            raise requests.ConnectionError(f"connection refused for {symbol}")
        if symbol not in self.prices:
            raise LookupError(f"No CoinGecko id for {symbol}")
        return PriceQuote(current_price=self.prices[symbol], price_change_24h=1.5, last_updated=datetime(2026, 1, 1))


def as_decimal(value):
    return Decimal(str(value))
