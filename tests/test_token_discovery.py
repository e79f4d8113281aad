from app.services.token_discovery import TableTokenSource, TokenDiscovery


def test_tokens_from_all_sources_are_uppercased_and_seeded(store, business_tables):
    business_tables('position_operations', 'btc', 'ETH', '')
    business_tables('defi_operations', 'eth', 'aave', None)
    business_tables('airdrop_participations', 'Sui')

    report = TokenDiscovery(store).discover_and_seed()

    assert report.found == {'BTC', 'ETH', 'AAVE', 'SUI'}
    assert sorted(report.seeded) == ['AAVE', 'BTC', 'ETH', 'SUI']
    assert report.failed_sources == []
    assert store.existing_tokens() == {'BTC', 'ETH', 'AAVE', 'SUI'}


def test_missing_source_table_contributes_nothing(store, engine):
    from sqlalchemy import text

    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE position_operations (id INTEGER PRIMARY KEY, token_symbol VARCHAR(20))"))
        conn.execute(text("INSERT INTO position_operations (token_symbol) VALUES ('link')"))

    report = TokenDiscovery(store).discover_and_seed()

    assert report.seeded == ['LINK']
    assert sorted(report.failed_sources) == ['airdrops', 'defi']


def test_rediscovery_keeps_real_prices(store, business_tables):
    business_tables('position_operations', 'BTC', 'DOGE')
    discovery = TokenDiscovery(store)
    discovery.discover_and_seed()

    store.upsert('BTC', 50000, 2.5, 1200, 1000, 0)
    report = discovery.discover_and_seed()

    assert report.seeded == []
    assert store.get('BTC').price_usdt == 50000
    assert store.get('DOGE').price_usdt == 1


def test_custom_sources(store, engine):
    from sqlalchemy import text

    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE watchlist (symbol VARCHAR(20))"))
        conn.execute(text("INSERT INTO watchlist (symbol) VALUES ('arb'), ('op')"))

    discovery = TokenDiscovery(store, sources=[TableTokenSource('watchlist', 'watchlist', 'symbol')])
    assert discovery.collect_tokens() == {'ARB', 'OP'}


def test_no_sources_means_nothing_seeded(store):
    report = TokenDiscovery(store, sources=[]).discover_and_seed()
    assert report.found == set()
    assert report.seeded == []


def test_rejected_token_does_not_block_the_rest(store, engine, business_tables):
    from sqlalchemy import text

    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TRIGGER reject_long_token BEFORE INSERT ON token_market "
            "WHEN length(NEW.token) > 10 BEGIN SELECT RAISE(ABORT, 'token too long'); END"
        ))
    business_tables('position_operations', 'aaaa_too_long', 'btc', 'eth')

    report = TokenDiscovery(store).discover_and_seed()

    assert report.seeded == ['BTC', 'ETH']
    assert store.existing_tokens() == {'BTC', 'ETH'}
