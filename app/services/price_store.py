import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, List, Optional, Set

from sqlalchemy import func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.database import build_insert_ignore, build_upsert, create_session_factory
from app.models.token_market import PLACEHOLDER_PRICE, TokenMarket


PRICE_COLUMNS = (
    'price_usdt',
    'price_change_24h',
    'price_change_24h_abs',
    'volume_24h',
    'market_cap',
    'last_updated',
)


@dataclass
class PriceRow:
    token: str
    price_usdt: Decimal
    price_change_24h: Decimal
    price_change_24h_abs: Decimal
    volume_24h: Decimal
    market_cap: Decimal


def normalize_token(token: str) -> str:
    return token.strip().upper()


class PriceStore:
    """Access to the token_market table.

    Each write is one atomic statement, so readers on other pooled connections
    only ever see a token's row before or after an update.
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = datetime.now):
        self.logger = logging.getLogger(__name__ + ".PriceStore")
        self.engine = engine
        self.SessionLocal = create_session_factory(engine)
        self._clock = clock

    def ping(self) -> None:
        session: Session = self.SessionLocal()
        try:
            session.execute(text('SELECT 1'))
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()

    def upsert(self, token: str, price_usdt, price_change_24h, price_change_24h_abs, volume_24h, market_cap) -> None:
        session: Session = self.SessionLocal()
        try:
            self._execute_upsert(session, PriceRow(
                token=normalize_token(token),
                price_usdt=price_usdt,
                price_change_24h=price_change_24h,
                price_change_24h_abs=price_change_24h_abs,
                volume_24h=volume_24h,
                market_cap=market_cap,
            ))
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    def upsert_many(self, rows: Iterable[PriceRow]) -> List[str]:
        """Upsert each row in its own transaction; returns the tokens written."""
        updated: List[str] = []
        session: Session = self.SessionLocal()
        try:
            for row in rows:
                try:
                    self._execute_upsert(session, row)
                    session.commit()
                    updated.append(row.token)
                except SQLAlchemyError as exc:
                    session.rollback()
                    self.logger.error(f"Failed to upsert price for {row.token}: {exc}")
        finally:
            session.close()
        return updated

    def _execute_upsert(self, session: Session, row: PriceRow) -> None:
        values = {
            'token': normalize_token(row.token),
            'price_usdt': row.price_usdt,
            'price_change_24h': row.price_change_24h,
            'price_change_24h_abs': row.price_change_24h_abs,
            'volume_24h': row.volume_24h,
            'market_cap': row.market_cap,
            'last_updated': self._clock(),
        }
        stmt = build_upsert(session, TokenMarket.__table__, values, key='token', update_columns=PRICE_COLUMNS)
        session.execute(stmt)

    def seed_placeholders(self, tokens: Iterable[str]) -> List[str]:
        """Insert placeholder rows for tokens that have none; existing rows are left alone."""
        wanted = sorted({normalize_token(t) for t in tokens if t and t.strip()})
        if not wanted:
            return []

        seeded: List[str] = []
        session: Session = self.SessionLocal()
        try:
            existing = self._existing_tokens(session)
            for token in wanted:
                if token in existing:
                    continue
                stmt = build_insert_ignore(session, TokenMarket.__table__, {
                    'token': token,
                    'price_usdt': PLACEHOLDER_PRICE,
                    'price_change_24h': 0,
                    'price_change_24h_abs': 0,
                    'volume_24h': 0,
                    'market_cap': 0,
                }, key='token')
                try:
                    result = session.execute(stmt)
                    session.commit()
                except SQLAlchemyError as exc:
                    session.rollback()
                    self.logger.error(f"Failed to seed placeholder for {token}: {exc}")
                    continue
                if result.rowcount:
                    seeded.append(token)
        finally:
            session.close()

        for token in seeded:
            self.logger.info(f"Seeded placeholder price for new token {token}")
        return seeded

    def get(self, token: str) -> Optional[TokenMarket]:
        session: Session = self.SessionLocal()
        try:
            return session.execute(
                select(TokenMarket).where(TokenMarket.token == normalize_token(token))
            ).scalar_one_or_none()
        finally:
            session.close()

    def get_many(self, tokens: Iterable[str]) -> List[TokenMarket]:
        wanted = sorted({normalize_token(t) for t in tokens if t and t.strip()})
        if not wanted:
            return []
        session: Session = self.SessionLocal()
        try:
            return list(session.execute(
                select(TokenMarket).where(TokenMarket.token.in_(wanted)).order_by(TokenMarket.token.asc())
            ).scalars())
        finally:
            session.close()

    def get_all(self) -> List[TokenMarket]:
        session: Session = self.SessionLocal()
        try:
            return list(session.execute(select(TokenMarket).order_by(TokenMarket.token.asc())).scalars())
        finally:
            session.close()

    def last_update(self) -> Optional[datetime]:
        session: Session = self.SessionLocal()
        try:
            return session.execute(select(func.max(TokenMarket.last_updated))).scalar()
        finally:
            session.close()

    def existing_tokens(self) -> Set[str]:
        session: Session = self.SessionLocal()
        try:
            return self._existing_tokens(session)
        finally:
            session.close()

    @staticmethod
    def _existing_tokens(session: Session) -> Set[str]:
        return set(session.execute(select(TokenMarket.token)).scalars())
