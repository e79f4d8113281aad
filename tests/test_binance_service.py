import json

import requests

from app.services.binance_service import BinanceService

from fakes import BinanceStub, FakeResponse, FakeSession, raw_ticker


def make_service(handler, **kwargs):
    sleeps = []
    session = FakeSession(handler)
    service = BinanceService(session=session, sleep=sleeps.append, **kwargs)
    return service, session, sleeps


def test_pairs_are_split_into_sequential_batches():
    prices = {f"T{i:03d}USDT": 1 + i for i in range(250)}
    service, session, sleeps = make_service(BinanceStub(prices), batch_size=100, batch_delay=0.2)

    tickers = service.fetch_tickers(list(prices))

    assert len(session.calls) == 3
    assert [len(json.loads(c['params']['symbols'])) for c in session.calls] == [100, 100, 50]
    assert sleeps == [0.2, 0.2]
    assert [t.symbol for t in tickers] == list(prices)


def test_single_batch_does_not_sleep_and_dedupes_input():
    service, session, sleeps = make_service(BinanceStub({'BTCUSDT': 50000, 'ETHUSDT': 3000}))

    tickers = service.fetch_tickers(['BTCUSDT', 'ethusdt', 'BTCUSDT'])

    assert len(session.calls) == 1
    assert json.loads(session.calls[0]['params']['symbols']) == ['BTCUSDT', 'ETHUSDT']
    assert sleeps == []
    assert {t.symbol for t in tickers} == {'BTCUSDT', 'ETHUSDT'}


def test_request_timeout_is_applied():
    service, session, _ = make_service(BinanceStub({'BTCUSDT': 1}), timeout=3.0)
    service.fetch_tickers(['BTCUSDT'])
    assert session.calls[0]['timeout'] == 3.0
    assert session.calls[0]['url'].endswith('/ticker/24hr')


def test_failed_batch_does_not_abort_the_others():
    prices = {'AUSDT': 1, 'BUSDT': 2, 'CUSDT': 3}
    stub = BinanceStub(prices, fail_batches_containing={'AUSDT'})
    service, session, _ = make_service(stub, batch_size=1)

    tickers = service.fetch_tickers(['AUSDT', 'BUSDT', 'CUSDT'])

    assert len(session.calls) == 3
    assert [t.symbol for t in tickers] == ['BUSDT', 'CUSDT']


def test_total_failure_returns_empty_list():
    def unreachable(url, params, timeout):
        raise requests.ConnectionError("network unreachable")

    service, _, _ = make_service(unreachable)
    assert service.fetch_tickers(['BTCUSDT', 'ETHUSDT']) == []


def test_server_error_batch_is_skipped():
    service, _, _ = make_service(lambda url, params, timeout: FakeResponse(503, {'msg': 'busy'}))
    assert service.fetch_tickers(['BTCUSDT']) == []


def test_rejected_batch_falls_back_to_single_pairs():
    service, session, _ = make_service(BinanceStub({'BTCUSDT': 50000}))

    tickers = service.fetch_tickers(['BTCUSDT', 'XXXUSDT'])

    assert [t.symbol for t in tickers] == ['BTCUSDT']
    assert session.calls[1]['params'] == {'symbol': 'BTCUSDT'}
    assert session.calls[2]['params'] == {'symbol': 'XXXUSDT'}


def test_malformed_and_invalid_records_are_dropped():
    records = [
        raw_ticker('BTCUSDT', '50000', change_pct='2.5', volume='1000'),
        {'symbol': 'ETHUSDT', 'lastPrice': 'not-a-number'},
        raw_ticker('HALTUSDT', '0'),
        raw_ticker('NEGUSDT', '1', volume='-5'),
    ]
    service, _, _ = make_service(lambda url, params, timeout: FakeResponse(200, records))

    tickers = service.fetch_tickers(['BTCUSDT', 'ETHUSDT', 'HALTUSDT', 'NEGUSDT'])

    assert [t.symbol for t in tickers] == ['BTCUSDT']
    assert tickers[0].last_price == 50000
    assert float(tickers[0].price_change_percent) == 2.5


def test_empty_input_makes_no_requests():
    service, session, _ = make_service(BinanceStub({}))
    assert service.fetch_tickers([]) == []
    assert session.calls == []
