"""
Module: credit_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  A ``Database`` handle bundles one
    engine with its session factory and is passed explicitly to whoever needs
    it; there is no process-global engine.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables, which imports models to register their tables).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED with explicit row-level locking
      (SELECT ... FOR UPDATE) on the credit batches and consumption records a
      transaction mutates.
    - SQLite (development and tests) opens every transaction with
      BEGIN IMMEDIATE, so writers are serialized and a transaction never reads
      a balance another writer is about to change.  A busy timeout makes
      competing writers wait instead of failing.
    - Foreign keys are enforced on SQLite (PRAGMA foreign_keys=ON).

Failure modes:
    - OperationalError ("database is locked") on SQLite if a writer waits
      longer than the busy timeout.
    - Connection pool exhaustion if pool_size + max_overflow is exceeded.

Audit relevance:
    All ledger transactions flow through sessions created here.  The
    session_scope() context manager gives atomic commit-or-rollback
    semantics, which is what makes "debit + task row" and "restore batches +
    mark record deleted" all-or-nothing.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from credit_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def _install_sqlite_serializable(engine: Engine) -> None:
    """Make pysqlite transactions start with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, which lets two transactions
    read the same balance before either writes.  Taking the write lock at
    BEGIN closes that window.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Disable pysqlite's own transaction handling; "begin" below owns it.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Explicit handle on one database: engine plus session factory.

    Contract:
        Construct once per process (or per test) and pass it to the code that
        opens transactions.  Services never see the Database; they receive a
        Session from the caller.

    Guarantees:
        - Sessions are created with expire_on_commit=False so results can be
          read after the transaction closes.
        - session_scope() commits on success, rolls back and re-raises on
          any exception, and always closes the session.
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
        sqlite_busy_timeout: float = 30.0,
    ) -> Database:
        """
        Create a Database from a connection URL.

        Args:
            database_url: postgresql://... for production, sqlite:///path for
                development and tests.
            echo: If True, log all SQL statements.
            pool_size: Number of connections to keep in the pool (PostgreSQL).
            max_overflow: Max connections beyond pool_size (PostgreSQL).
            pool_pre_ping: If True, test connections before use.
            pool_timeout: Seconds to wait for a pooled connection.
            pool_recycle: Seconds after which a connection is recycled.
            sqlite_busy_timeout: Seconds a SQLite writer waits for the lock.

        Returns:
            A new Database handle.
        """
        if database_url.startswith("sqlite"):
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={
                    "timeout": sqlite_busy_timeout,
                    "check_same_thread": False,
                },
            )
            _install_sqlite_serializable(engine)
        else:
            engine = create_engine(
                database_url,
                echo=echo,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                isolation_level="READ COMMITTED",
            )

        logger.info(
            "engine_initialized",
            extra={
                "dialect": engine.dialect.name,
                "echo": echo,
            },
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Session factory, for code that needs one session per thread."""
        return self._session_factory

    @property
    def is_postgres(self) -> bool:
        return self._engine.dialect.name == "postgresql"

    def session(self) -> Session:
        """Get a new, unscoped session.  The caller owns its lifecycle."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Usage:
            with database.session_scope() as session:
                CreditLedger(session).consume(...)
                # Commits on successful exit, rolls back on exception
        """
        session = self.session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create all ledger tables (no migrations; development and tests)."""
        from credit_kernel.db.base import Base

        # Registers every model's table on Base.metadata
        import credit_kernel.models  # noqa: F401

        Base.metadata.create_all(self._engine)
        logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from credit_kernel.db.base import Base

        import credit_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()
