import pytest
from sqlalchemy import text

import app.models  # noqa: F401 - registers token_market on Base.metadata
from app.database import Base, create_db_engine
from app.services.price_store import PriceStore
from app.services.symbol_mapper import SymbolMapper

from fakes import FakeClock


BUSINESS_TABLES = {
    'position_operations': 'token_symbol',
    'defi_operations': 'token',
    'airdrop_participations': 'participation_token',
}


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(engine, clock):
    return PriceStore(engine, clock=clock)


@pytest.fixture
def btc_mapper():
    return SymbolMapper({'BTC': 'BTCUSDT'})


@pytest.fixture
def business_tables(engine):
    """Creates the business tables and returns an ``add(table, *tokens)`` helper."""
    with engine.begin() as conn:
        for table_name, column_name in BUSINESS_TABLES.items():
            conn.execute(text(
                f"CREATE TABLE {table_name} (id INTEGER PRIMARY KEY AUTOINCREMENT, {column_name} VARCHAR(20))"
            ))

    def add(table_name, *tokens):
        column_name = BUSINESS_TABLES[table_name]
        with engine.begin() as conn:
            for token in tokens:
                conn.execute(text(f"INSERT INTO {table_name} ({column_name}) VALUES (:token)"), {'token': token})

    return add
