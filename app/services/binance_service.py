import json
import logging
import time
from typing import Callable, Iterable, List, Optional

import requests
from pydantic import ValidationError

from app.schemas import Ticker24h
from app.validation import TickerValidator


BINANCE_BASE_URL = 'https://api.binance.com/api/v3'
# Binance rejects ticker/24hr requests with more symbols than this
MAX_SYMBOLS_PER_REQUEST = 100


class BinanceService:
    def __init__(
        self,
        base_url: str = BINANCE_BASE_URL,
        batch_size: int = MAX_SYMBOLS_PER_REQUEST,
        batch_delay: float = 0.2,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        validator: Optional[TickerValidator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.logger = logging.getLogger(__name__ + '.BinanceService')
        self.base_url = base_url.rstrip('/')
        self.batch_size = min(batch_size, MAX_SYMBOLS_PER_REQUEST)
        self.batch_delay = batch_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self.validator = validator or TickerValidator()
        self._sleep = sleep

    def fetch_tickers(self, pairs: Iterable[str]) -> List[Ticker24h]:
        """24h tickers for ``pairs``; failed batches are skipped, total failure gives []."""
        unique_pairs = list(dict.fromkeys(p.strip().upper() for p in pairs if p and p.strip()))
        if not unique_pairs:
            return []

        batches = [unique_pairs[i:i + self.batch_size] for i in range(0, len(unique_pairs), self.batch_size)]
        raw: List[dict] = []
        failed_batches = 0
        for index, batch in enumerate(batches):
            if index > 0 and self.batch_delay > 0:
                self._sleep(self.batch_delay)
            records = self._fetch_batch(batch)
            if records is None:
                failed_batches += 1
                continue
            raw.extend(records)

        if failed_batches:
            self.logger.warning(f"{failed_batches}/{len(batches)} ticker batches failed")

        tickers = self._parse(raw)
        return self.validator.filter_valid(tickers)

    def _fetch_batch(self, batch: List[str]) -> Optional[List[dict]]:
        symbols_param = json.dumps(batch, separators=(',', ':'))
        try:
            response = self.session.get(
                f"{self.base_url}/ticker/24hr",
                params={'symbols': symbols_param},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            self.logger.error(f"Ticker request failed for {len(batch)} pairs: {exc}")
            return None

        # One unknown or delisted pair makes Binance reject the whole batch
        if response.status_code == 400 and len(batch) > 1:
            self.logger.warning(f"Batch rejected ({self._error_message(response)}); fetching {len(batch)} pairs individually")
            return self._fetch_individually(batch)

        try:
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            self.logger.error(f"Ticker batch failed with status {response.status_code}: {exc}")
            return None

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            self.logger.error(f"Unexpected ticker payload type {type(data).__name__}")
            return None
        return data

    def _fetch_individually(self, batch: List[str]) -> List[dict]:
        records: List[dict] = []
        for index, pair in enumerate(batch):
            if index > 0 and self.batch_delay > 0:
                self._sleep(self.batch_delay)
            try:
                response = self.session.get(
                    f"{self.base_url}/ticker/24hr",
                    params={'symbol': pair},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
            except (requests.RequestException, ValueError) as exc:
                self.logger.warning(f"Ticker for {pair} unavailable: {exc}")
                continue
            if isinstance(data, dict):
                records.append(data)
        return records

    def _parse(self, raw: List[dict]) -> List[Ticker24h]:
        tickers: List[Ticker24h] = []
        for record in raw:
            try:
                tickers.append(Ticker24h.model_validate(record))
            except ValidationError as exc:
                symbol = record.get('symbol') if isinstance(record, dict) else None
                self.logger.warning(f"Malformed ticker record for {symbol}: {exc.error_count()} errors")
        return tickers

    @staticmethod
    def _error_message(response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        if isinstance(payload, dict) and 'msg' in payload:
            return f"{payload.get('code')}: {payload['msg']}"
        return f"HTTP {response.status_code}"

    def close(self):
        self.session.close()
