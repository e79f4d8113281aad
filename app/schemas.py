from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Ticker24h(BaseModel):
    """One record of Binance GET /api/v3/ticker/24hr."""
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    last_price: Decimal = Field(alias='lastPrice')
    price_change_percent: Decimal = Field(alias='priceChangePercent')
    price_change: Decimal = Field(alias='priceChange')
    volume: Decimal
    quote_volume: Decimal = Field(default=Decimal(0), alias='quoteVolume')


class TokenPriceEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    token: str
    price_usdt: float
    price_change_24h: float
    price_change_24h_abs: float
    volume_24h: float
    market_cap: float
    last_updated: Optional[datetime] = None


class PriceQuote(BaseModel):
    current_price: float = 0.0
    price_change_24h: float = 0.0
    last_updated: datetime

    @property
    def is_zero(self) -> bool:
        return self.current_price == 0.0


class BatchPriceRequest(BaseModel):
    tokens: Optional[List[str]] = None


class FallbackBatchRequest(BaseModel):
    symbols: Optional[List[str]] = None
