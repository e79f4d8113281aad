import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from app.schemas import Ticker24h


DEFAULT_TICKER_RULES = {
    'price_range': {'min': Decimal('0'), 'max': Decimal('10000000')},
    'volume_min': Decimal('0'),
    'change_pct_min': Decimal('-100'),
}


class TickerValidator:
    def __init__(self, validation_rules: Optional[Dict[str, Any]] = None, logger: Optional[logging.Logger] = None):
        self._validation_rules = dict(DEFAULT_TICKER_RULES)
        if validation_rules:
            self._validation_rules.update(validation_rules)
        self.logger = logger or logging.getLogger(__name__ + ".TickerValidator")

    def validate(self, ticker: Ticker24h) -> Tuple[bool, List[str]]:
        issues: List[str] = []

        for name in ('last_price', 'price_change_percent', 'price_change', 'volume', 'quote_volume'):
            if not getattr(ticker, name).is_finite():
                issues.append(f"{name} is not finite")
        if issues:
            return False, issues

        price_range = self._validation_rules['price_range']
        # A zero last price is what Binance reports for halted pairs
        if not (price_range['min'] < ticker.last_price <= price_range['max']):
            issues.append(f"price {ticker.last_price} outside ({price_range['min']}, {price_range['max']}]")

        if ticker.volume < self._validation_rules['volume_min']:
            issues.append(f"negative volume {ticker.volume}")
        if ticker.quote_volume < self._validation_rules['volume_min']:
            issues.append(f"negative quote volume {ticker.quote_volume}")

        if ticker.price_change_percent < self._validation_rules['change_pct_min']:
            issues.append(f"24h change {ticker.price_change_percent}% below {self._validation_rules['change_pct_min']}%")

        return not issues, issues

    def filter_valid(self, tickers: List[Ticker24h]) -> List[Ticker24h]:
        valid: List[Ticker24h] = []
        for ticker in tickers:
            ok, issues = self.validate(ticker)
            if ok:
                valid.append(ticker)
            else:
                self.logger.warning(f"Dropping ticker {ticker.symbol}: {'; '.join(issues)}")
        return valid
