from .symbol_mapper import SymbolMapper
from .binance_service import BinanceService
from .price_store import PriceStore, PriceRow
from .token_discovery import TokenDiscovery, TableTokenSource, DiscoveryReport
from .price_sync import PriceSyncService, SyncState, CycleResult
from .price_query import PriceQueryService
from .price_cache import PriceCache, CoinGeckoClient
