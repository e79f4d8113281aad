import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set

from sqlalchemy import column, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.services.price_store import PriceStore, normalize_token


@dataclass(frozen=True)
class TableTokenSource:
    """Distinct token values of one column in a business table."""
    name: str
    table_name: str
    column_name: str

    def fetch_tokens(self, session: Session) -> Set[str]:
        col = column(self.column_name)
        stmt = (
            select(col)
            .distinct()
            .select_from(table(self.table_name))
            .where(col.isnot(None))
            .where(col != '')
        )
        return {value for value in session.execute(stmt).scalars() if value}


DEFAULT_TOKEN_SOURCES = (
    TableTokenSource('positions', 'position_operations', 'token_symbol'),
    TableTokenSource('defi', 'defi_operations', 'token'),
    TableTokenSource('airdrops', 'airdrop_participations', 'participation_token'),
)


@dataclass
class DiscoveryReport:
    found: Set[str] = field(default_factory=set)
    seeded: List[str] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)


class TokenDiscovery:
    def __init__(self, store: PriceStore, sources: Optional[Iterable[TableTokenSource]] = None):
        self.logger = logging.getLogger(__name__ + ".TokenDiscovery")
        self.store = store
        self.sources = tuple(sources) if sources is not None else DEFAULT_TOKEN_SOURCES

    def collect_tokens(self, report: Optional[DiscoveryReport] = None) -> Set[str]:
        report = report or DiscoveryReport()
        tokens: Set[str] = set()

        for source in self.sources:
            session: Session = self.store.SessionLocal()
            try:
                found = source.fetch_tokens(session)
            except SQLAlchemyError as exc:
                session.rollback()
                # Table not created yet or not reachable: contributes nothing this round
                self.logger.warning(f"Token source {source.name} ({source.table_name}) unavailable, skipping: {exc.__class__.__name__}")
                report.failed_sources.append(source.name)
                continue
            finally:
                session.close()
            tokens.update(normalize_token(t) for t in found if isinstance(t, str) and t.strip())

        report.found = tokens
        return tokens

    def discover_and_seed(self) -> DiscoveryReport:
        report = DiscoveryReport()
        tokens = self.collect_tokens(report)
        if tokens:
            report.seeded = self.store.seed_placeholders(tokens)
        self.logger.info(f"Token discovery done: {len(tokens)} referenced, {len(report.seeded)} new")
        return report
