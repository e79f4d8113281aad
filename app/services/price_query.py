from typing import Any, Dict, Iterable, List, Optional

from app.exceptions import BatchTooLargeError
from app.schemas import TokenPriceEntry
from app.services.price_store import PriceStore
from app.services.price_sync import PriceSyncService
from app.services.symbol_mapper import SymbolMapper

MAX_BATCH_TOKENS = 100


class PriceQueryService:
    """Read-only view of token_market for API callers."""

    def __init__(self, store: PriceStore, mapper: SymbolMapper, sync: Optional[PriceSyncService] = None,
                 max_batch_size: int = MAX_BATCH_TOKENS):
        self.store = store
        self.mapper = mapper
        self.sync = sync
        self.max_batch_size = max_batch_size

    @property
    def is_available(self) -> bool:
        return self.sync is None or self.sync.store_ready

    def get_price(self, token: str) -> Optional[TokenPriceEntry]:
        if not token or not token.strip():
            raise ValueError("token must not be empty")
        row = self.store.get(token)
        return TokenPriceEntry.model_validate(row) if row is not None else None

    def get_batch_prices(self, tokens: Iterable[str]) -> List[TokenPriceEntry]:
        """Entries for the tokens that have a row; absent tokens are simply not priced yet."""
        tokens = list(tokens) if tokens is not None else []
        if not tokens:
            raise ValueError("tokens must be a non-empty list")
        if len(tokens) > self.max_batch_size:
            raise BatchTooLargeError(len(tokens), self.max_batch_size)
        if not all(isinstance(t, str) for t in tokens):
            raise ValueError("tokens must be strings")
        return [TokenPriceEntry.model_validate(row) for row in self.store.get_many(tokens)]

    def get_all_prices(self) -> List[TokenPriceEntry]:
        return [TokenPriceEntry.model_validate(row) for row in self.store.get_all()]

    def get_health(self) -> Dict[str, Any]:
        running = self.sync is not None and self.sync.is_running
        health = {
            'service_status': 'running' if running else 'stopped',
            'last_update': self.store.last_update(),
            'supported_tokens_count': len(self.mapper),
        }
        if self.sync is not None:
            health['cycle_count'] = self.sync.cycle_count
            health['skipped_cycles'] = self.sync.skipped_cycles
            health['last_cycle'] = self.sync.last_cycle.to_dict() if self.sync.last_cycle else None
        return health
