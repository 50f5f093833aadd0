"""
PostgreSQL access for Standup Pulse.

One DatabaseService per process owns the engine and hands out sessions, one
session per unit of work (a submission, one person's metrics, one detector).
upsert() writes a row or resolves a conflict on its natural key in a single
statement; entries, metrics, alerts and badges all rely on it for idempotent
re-runs. Tests bind an in-memory SQLite engine, so upsert supports both
dialects.
"""
import logging
import re
from contextlib import contextmanager
from typing import Generator, FrozenSet, Dict, Any, Iterable, Optional

import psycopg2
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy import create_engine, text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from pulse.core.config import get_settings
from pulse.core.exceptions import DatabaseException
from pulse.core.resilience import get_circuit_breaker, CircuitBreakerError
from pulse.core.metrics import track_db_operation, DB_CONNECTION_POOL_SIZE, DB_CONNECTION_POOL_AVAILABLE
from pulse.models.db_models import Base

logger = logging.getLogger(__name__)

KNOWN_TABLES: FrozenSet[str] = frozenset({'standup_entry', 'performance_metric', 'alert', 'achievement'})

IDENTIFIER_PATTERN = re.compile(r'^[a-z_][a-z0-9_]{0,62}$')


def validate_identifier(identifier: str, kind: str = "identifier") -> str:
    """
    Lower-cased identifier, safe to quote into DDL.

    Raises:
        ValueError: Empty, longer than PostgreSQL's 63 characters, or not [a-z_][a-z0-9_]*
    """
    normalized = (identifier or "").strip().lower()
    if not IDENTIFIER_PATTERN.match(normalized):
        raise ValueError(f"Invalid {kind}: {identifier!r}")
    return normalized


def validate_table_name(table_name: str) -> str:
    normalized = validate_identifier(table_name, "table name")
    if normalized not in KNOWN_TABLES:
        raise ValueError(f"Unknown table {table_name!r}, expected one of {sorted(KNOWN_TABLES)}")
    return normalized


def _dialect_insert(session: Session):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
        return insert
    raise DatabaseException("Upsert is not supported for this database", detail=f"dialect={dialect}")


def upsert(
    session: Session,
    model,
    values: Dict[str, Any],
    key_columns: Iterable[str],
    update_columns: Iterable[str] = (),
) -> bool:
    """
    Insert a row or resolve a conflict on its natural key in one statement.

    Args:
        session: Active session; the caller owns the transaction
        model: Declarative model class
        values: Column values for the row
        key_columns: Columns of the unique constraint to resolve conflicts on
        update_columns: Columns overwritten on conflict. Empty means the
            existing row is left untouched.

    Returns:
        True if a row was inserted or updated, False if the conflict was ignored
    """
    insert = _dialect_insert(session)
    key_columns = list(key_columns)
    update_columns = list(update_columns)

    stmt = insert(model).values(**values)
    if update_columns:
        stmt = stmt.on_conflict_do_update(
            index_elements=key_columns,
            set_={column: stmt.excluded[column] for column in update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=key_columns)

    with track_db_operation('upsert', model.__tablename__):
        result = session.execute(stmt)
    return (result.rowcount or 0) > 0


class DatabaseService:
    """Engine, session factory and bootstrap for the standup database."""

    def __init__(self):
        self.settings = get_settings()
        self.engine: Optional[Engine] = None
        self.SessionLocal = None
        self._initialized = False

    def get_connection_url(self, with_db: bool = True) -> str:
        """URL for the standup database, or for the `postgres` maintenance database."""
        s = self.settings
        database = s.postgres_db if with_db else "postgres"
        return f"postgresql://{s.postgres_user}:{s.postgres_password}@{s.postgres_host}:{s.postgres_port}/{database}"

    @contextmanager
    def _maintenance_cursor(self):
        conn = psycopg2.connect(
            host=self.settings.postgres_host,
            port=self.settings.postgres_port,
            user=self.settings.postgres_user,
            password=self.settings.postgres_password,
            database='postgres',
        )
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        try:
            with conn.cursor() as cursor:
                yield cursor
        finally:
            conn.close()

    def ensure_database(self):
        """Create the configured database when the server does not have it yet."""
        name = validate_identifier(self.settings.postgres_db, "database name")
        with self._maintenance_cursor() as cursor:
            cursor.execute("SELECT 1 FROM pg_database WHERE datname = %s", (name,))
            if cursor.fetchone() is None:
                logger.info(f"Creating database {name}")
                cursor.execute(f'CREATE DATABASE "{name}"')

    def bind_engine(self, engine: Engine):
        """Use an already created engine (tests bind an in-memory SQLite engine)."""
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
        self._initialized = True

    def check_tables_exist(self) -> Dict[str, bool]:
        if not self._initialized:
            return {}
        existing = set(inspect(self.engine).get_table_names())
        return {table: table in existing for table in sorted(KNOWN_TABLES)}

    def initialize(self) -> bool:
        """
        Create the database if needed, connect, and create missing tables.

        Schema changes after the first deploy go through alembic; create_all
        only fills in tables that do not exist.

        Returns:
            False when any step failed; the error is logged
        """
        try:
            self.ensure_database()
            engine = create_engine(
                self.get_connection_url(),
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
            )
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            self.bind_engine(engine)

            missing = [table for table, exists in self.check_tables_exist().items() if not exists]
            if missing:
                logger.info(f"Creating missing tables: {missing}")
                Base.metadata.create_all(bind=self.engine)
        except Exception as e:
            logger.error(f"Database initialization failed: {e}", exc_info=True)
            return False

        logger.info(f"Database ready: {self.settings.postgres_host}/{self.settings.postgres_db}")
        return True

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """One unit of work: commits on success, rolls back and re-raises on error."""
        if not self._initialized:
            raise RuntimeError("Database not initialized")

        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Rolled back unit of work: {e}")
            raise
        finally:
            session.close()

    def get_table_row_count(self, table_name: str) -> int:
        """
        Row count for the health report; 0 while the database is unreachable.

        Raises:
            ValueError: table_name is not one of the service's tables
        """
        if not self._initialized:
            return 0
        table = validate_table_name(table_name)

        def count() -> int:
            with track_db_operation('count', table), self.engine.connect() as conn:
                return conn.execute(text(f'SELECT COUNT(*) FROM "{table}"')).scalar() or 0

        try:
            return get_circuit_breaker("postgresql").call(count)
        except CircuitBreakerError:
            logger.warning(f"PostgreSQL circuit open, reporting 0 rows for {table}")
        except Exception as e:
            logger.error(f"Row count for {table} failed: {e}")
        return 0

    def get_pool_status(self) -> Dict[str, Any]:
        if self.engine is None:
            return {"status": "not_initialized", "pool_size": 0}

        pool = self.engine.pool
        if not hasattr(pool, "size"):
            return {"status": "unpooled", "pool_class": type(pool).__name__}

        try:
            status = {
                "pool_size": pool.size(),
                "checked_in": pool.checkedin(),
                "checked_out": pool.checkedout(),
                "overflow": pool.overflow(),
            }
        except Exception as e:
            logger.warning(f"Could not read pool status: {e}")
            return {"status": "error", "error": str(e)}

        DB_CONNECTION_POOL_SIZE.set(status["pool_size"])
        DB_CONNECTION_POOL_AVAILABLE.set(status["checked_in"])
        return status

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
            logger.info("Database connections closed")


_db_service: Optional[DatabaseService] = None


def get_db_service() -> DatabaseService:
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
