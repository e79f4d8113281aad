import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from app.database import resolve_database_url


load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, '') else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, '') else default


@dataclass
class Settings:
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 60

    binance_base_url: str = 'https://api.binance.com/api/v3'
    refresh_interval: float = 60.0
    fetch_batch_size: int = 100
    fetch_batch_delay: float = 0.2
    fetch_timeout: float = 5.0
    token_pairs_file: Optional[str] = None

    coingecko_base_url: str = 'https://api.coingecko.com/api/v3'
    cache_ttl: float = 300.0
    cache_fetch_timeout: float = 10.0

    log_level: str = 'INFO'
    api_host: str = '0.0.0.0'
    api_port: int = 3000

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            database_url=resolve_database_url(),
            db_pool_size=_env_int('DB_POOL_SIZE', 5),
            db_max_overflow=_env_int('DB_MAX_OVERFLOW', 10),
            db_pool_timeout=_env_int('DB_POOL_TIMEOUT', 60),
            binance_base_url=os.getenv('BINANCE_BASE_URL', cls.binance_base_url),
            refresh_interval=_env_float('PRICE_REFRESH_INTERVAL', 60.0),
            fetch_batch_size=_env_int('FETCH_BATCH_SIZE', 100),
            fetch_batch_delay=_env_float('FETCH_BATCH_DELAY', 0.2),
            fetch_timeout=_env_float('FETCH_TIMEOUT', 5.0),
            token_pairs_file=os.getenv('TOKEN_PAIRS_FILE') or None,
            coingecko_base_url=os.getenv('COINGECKO_BASE_URL', cls.coingecko_base_url),
            cache_ttl=_env_float('PRICE_CACHE_TTL', 300.0),
            cache_fetch_timeout=_env_float('PRICE_CACHE_TIMEOUT', 10.0),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            api_host=os.getenv('API_HOST', '0.0.0.0'),
            api_port=_env_int('API_PORT', 3000),
        )
