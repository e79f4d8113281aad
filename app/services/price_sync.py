"""
Background token price synchronization.

One refresh cycle = fetch Binance tickers for every mapped pair, upsert them
into token_market, then seed any newly referenced tokens. Cycles are driven by
an APScheduler interval job and by manual refresh requests; at most one cycle
runs at a time.
"""
import enum
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError

from app.exceptions import ServiceUnavailableError
from app.schemas import Ticker24h
from app.services.binance_service import BinanceService
from app.services.price_store import PriceRow, PriceStore
from app.services.symbol_mapper import SymbolMapper
from app.services.token_discovery import TokenDiscovery

REFRESH_JOB_ID = 'token-price-refresh'


class SyncState(str, enum.Enum):
    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    CYCLE_IN_PROGRESS = 'cycle_in_progress'
    STOPPING = 'stopping'


@dataclass
class CycleResult:
    started_at: datetime
    finished_at: Optional[datetime] = None
    fetched: int = 0
    updated: List[str] = field(default_factory=list)
    seeded: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'fetched': self.fetched,
            'updated': list(self.updated),
            'seeded': list(self.seeded),
            'error': self.error,
        }


class PriceSyncService:
    def __init__(
        self,
        store: PriceStore,
        fetcher: BinanceService,
        mapper: SymbolMapper,
        discovery: Optional[TokenDiscovery] = None,
        interval_seconds: float = 60.0,
        scheduler_factory: Callable[[], BackgroundScheduler] = lambda: BackgroundScheduler(daemon=True),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.logger = logging.getLogger(__name__ + ".PriceSyncService")
        self.store = store
        self.fetcher = fetcher
        self.mapper = mapper
        self.discovery = discovery or TokenDiscovery(store)
        self.interval_seconds = interval_seconds
        self._scheduler_factory = scheduler_factory
        self._clock = clock

        self._state = SyncState.STOPPED
        self._state_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

        self.cycle_count = 0
        self.skipped_cycles = 0
        self.last_cycle: Optional[CycleResult] = None

    # state machine
    def _transition(self, expected: SyncState, new: SyncState) -> bool:
        with self._state_lock:
            if self._state != expected:
                return False
            self._state = new
            return True

    @property
    def state(self) -> SyncState:
        with self._state_lock:
            state = self._state
        if state == SyncState.RUNNING and self._cycle_lock.locked():
            return SyncState.CYCLE_IN_PROGRESS
        return state

    @property
    def is_running(self) -> bool:
        return self.state in (SyncState.RUNNING, SyncState.CYCLE_IN_PROGRESS)

    @property
    def store_ready(self) -> bool:
        return self.state in (SyncState.STARTING, SyncState.RUNNING, SyncState.CYCLE_IN_PROGRESS)

    def start(self) -> bool:
        if not self._transition(SyncState.STOPPED, SyncState.STARTING):
            self.logger.warning(f"Token price sync already {self.state.value}; start ignored")
            return False

        try:
            self.store.ping()
        except SQLAlchemyError as exc:
            self.logger.error(f"Price store unreachable, sync not started: {exc}")
            self._transition(SyncState.STARTING, SyncState.STOPPED)
            return False

        try:
            self.discovery.discover_and_seed()
        except SQLAlchemyError as exc:
            self.logger.error(f"Initial token discovery failed: {exc}")

        # Completion, not success, of the first cycle gates RUNNING
        self.run_cycle()

        with self._state_lock:
            if self._state != SyncState.STARTING:
                self.logger.warning("Stop requested during startup; scheduler not started")
                return False
            scheduler = self._scheduler_factory()
            scheduler.add_job(
                self._scheduled_tick,
                IntervalTrigger(seconds=self.interval_seconds),
                id=REFRESH_JOB_ID,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            self._state = SyncState.RUNNING

        self.logger.info(f"Token price sync started: {len(self.mapper)} pairs every {self.interval_seconds:g}s")
        return True

    def stop(self) -> None:
        with self._state_lock:
            if self._state in (SyncState.STOPPED, SyncState.STOPPING):
                return
            self._state = SyncState.STOPPING
            scheduler, self._scheduler = self._scheduler, None

        if scheduler is not None:
            scheduler.shutdown(wait=True)

        # Let an in-flight manual cycle commit before the pool goes away
        with self._cycle_lock:
            self.store.dispose()

        self._transition(SyncState.STOPPING, SyncState.STOPPED)
        self.logger.info("Token price sync stopped")

    def refresh_now(self) -> Optional[CycleResult]:
        if not self.store_ready:
            raise ServiceUnavailableError("Token price service is not running")
        return self.run_cycle()

    def _scheduled_tick(self) -> None:
        if not self.is_running:
            return
        self.run_cycle()

    def run_cycle(self) -> Optional[CycleResult]:
        """Run one refresh cycle; returns None when another cycle is in flight."""
        if not self._cycle_lock.acquire(blocking=False):
            self.skipped_cycles += 1
            self.logger.info("Price refresh already in progress; skipping")
            return None

        result = CycleResult(started_at=self._clock())
        try:
            self.logger.info("Starting token price refresh")
            tickers = self.fetcher.fetch_tickers(self.mapper.external_ids())
            result.fetched = len(tickers)

            if tickers:
                result.updated = self.store.upsert_many(self._rows_for(tickers))
            else:
                self.logger.warning("No price data fetched this cycle")

            result.seeded = self.discovery.discover_and_seed().seeded
        except SQLAlchemyError as exc:
            result.error = str(exc)
            self.logger.error(f"Price refresh hit a storage error: {exc}")
        finally:
            result.finished_at = self._clock()
            self.cycle_count += 1
            self.last_cycle = result
            self._cycle_lock.release()

        self.logger.info(
            f"Price refresh done: {result.fetched} fetched, {len(result.updated)} updated, {len(result.seeded)} new tokens"
        )
        return result

    def _rows_for(self, tickers: List[Ticker24h]) -> List[PriceRow]:
        rows: List[PriceRow] = []
        for ticker in tickers:
            token = self.mapper.to_token(ticker.symbol)
            if not token:
                self.logger.debug(f"Ignoring ticker for unmapped pair {ticker.symbol}")
                continue
            rows.append(PriceRow(
                token=token,
                price_usdt=ticker.last_price,
                price_change_24h=ticker.price_change_percent,
                price_change_24h_abs=ticker.price_change,
                volume_24h=ticker.volume,
                market_cap=ticker.quote_volume,
            ))
        return rows
