import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from app.api import create_app
from app.config import Settings
from app.database import create_db_engine
from app.services import (
    BinanceService,
    CoinGeckoClient,
    PriceCache,
    PriceQueryService,
    PriceStore,
    PriceSyncService,
    SymbolMapper,
    TokenDiscovery,
)


@dataclass
class PriceServices:
    sync: PriceSyncService
    query: PriceQueryService
    cache: PriceCache


def configure_logging(level: str = 'INFO') -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def build_services(settings: Settings) -> PriceServices:
    engine = create_db_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    store = PriceStore(engine)
    mapper = SymbolMapper.from_json_file(settings.token_pairs_file) if settings.token_pairs_file else SymbolMapper.binance()
    fetcher = BinanceService(
        base_url=settings.binance_base_url,
        batch_size=settings.fetch_batch_size,
        batch_delay=settings.fetch_batch_delay,
        timeout=settings.fetch_timeout,
    )
    sync = PriceSyncService(
        store=store,
        fetcher=fetcher,
        mapper=mapper,
        discovery=TokenDiscovery(store),
        interval_seconds=settings.refresh_interval,
    )
    query = PriceQueryService(store, mapper, sync)
    cache = PriceCache(
        CoinGeckoClient(base_url=settings.coingecko_base_url, timeout=settings.cache_fetch_timeout),
        ttl_seconds=settings.cache_ttl,
    )
    return PriceServices(sync=sync, query=query, cache=cache)


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    services = build_services(settings)
    return create_app(services.sync, services.query, services.cache, manage_lifecycle=True)


if __name__ == '__main__':
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_application(settings), host=settings.api_host, port=settings.api_port)
