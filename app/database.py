from typing import Any, Dict, Iterable, Optional
import os
from urllib.parse import quote_plus

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool


load_dotenv()

Base = declarative_base()


def _resolve_mysql_url() -> str:
    user = os.getenv('DB_USER')
    password = os.getenv('DB_PASSWORD')
    # Default host/port if not provided
    host = os.getenv('DB_HOST', '127.0.0.1')
    database = os.getenv('DB_NAME')
    port = os.getenv('DB_PORT', '3306')

    if not (user and password and database):
        raise RuntimeError(
            "MySQL configuration missing. Provide DATABASE_URL, or DB_USER, DB_PASSWORD, DB_NAME (and optional DB_HOST, DB_PORT) via environment"
        )

    # Detect common misconfiguration where credentials are embedded in DB_HOST
    if '@' in host:
        raise RuntimeError(
            f"Invalid DB_HOST value '{host}'. Host must not contain '@'. Set DB_HOST to just hostname or IP, e.g. 127.0.0.1"
        )

    # URL-encode credentials to safely handle special characters like '@', ':', '/' etc.
    safe_user = quote_plus(user)
    safe_password = quote_plus(password)

    host_part = f"{host}:{port}" if port else host
    return f"mysql+mysqlconnector://{safe_user}:{safe_password}@{host_part}/{database}"


def resolve_database_url() -> str:
    """DATABASE_URL wins over the individual DB_* variables."""
    url = os.getenv('DATABASE_URL')
    if url:
        return url
    return _resolve_mysql_url()


def create_db_engine(db_url: Optional[str] = None, pool_size: int = 5, max_overflow: int = 10, pool_timeout: int = 60) -> Engine:
    db_url = db_url or resolve_database_url()

    if db_url.startswith('sqlite'):
        # Single shared connection so in-memory databases survive across sessions
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    connect_args: Dict[str, Any] = {}
    if db_url.startswith('mysql'):
        connect_args = {
            "charset": "utf8mb4",
            "autocommit": False,
            "sql_mode": "TRADITIONAL",
            "connect_timeout": 60,
            "use_unicode": True,
        }

    # Excess checkouts queue on the pool for up to pool_timeout seconds
    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=1800,  # Recycle connections every 30 minutes
        pool_reset_on_return='commit',
        connect_args=connect_args,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def _dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def build_upsert(session: Session, table, values: Dict[str, Any], key: str, update_columns: Iterable[str]):
    """Single-statement insert-or-update keyed on a unique column."""
    dialect = _dialect_name(session)
    update_columns = list(update_columns)
    if dialect == 'mysql':
        stmt = mysql_insert(table).values(**values)
        return stmt.on_duplicate_key_update({col: stmt.inserted[col] for col in update_columns})
    if dialect in ('sqlite', 'postgresql'):
        insert = sqlite_insert if dialect == 'sqlite' else pg_insert
        stmt = insert(table).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[key],
            set_={col: stmt.excluded[col] for col in update_columns},
        )
    raise NotImplementedError(f"Upsert not supported for dialect {dialect}")


def build_insert_ignore(session: Session, table, values: Dict[str, Any], key: str):
    """Insert that silently leaves an existing row with the same key untouched."""
    dialect = _dialect_name(session)
    if dialect == 'mysql':
        return mysql_insert(table).values(**values).prefix_with('IGNORE')
    if dialect in ('sqlite', 'postgresql'):
        insert = sqlite_insert if dialect == 'sqlite' else pg_insert
        return insert(table).values(**values).on_conflict_do_nothing(index_elements=[key])
    raise NotImplementedError(f"Insert-ignore not supported for dialect {dialect}")
