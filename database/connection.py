"""Database connection management with connection pooling."""

from contextlib import contextmanager
from typing import Generator, Optional
from sqlalchemy import create_engine, event, pool, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import OperationalError
import structlog

from core.config import get_config
from database.models import Base

logger = structlog.get_logger(__name__)


class DatabaseConnection:
    """Manages database connections with pooling and health checks."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: int = 10,
        max_overflow: int = 20,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        echo: bool = False,
    ):
        """Initialize database connection.

        Args:
            database_url: PostgreSQL connection URL (``sqlite://`` is accepted for tests)
            pool_size: Number of connections to maintain
            max_overflow: Max connections beyond pool_size
            pool_timeout: Seconds to wait for connection
            pool_recycle: Recycle connections after N seconds
            echo: Echo SQL statements (for debugging)
        """
        self.database_url = database_url or get_config().database_url
        self.is_sqlite = self.database_url.startswith("sqlite")

        if self.is_sqlite:
            # One shared connection so in-memory databases survive across sessions and threads
            self.engine = create_engine(
                self.database_url,
                poolclass=pool.StaticPool,
                connect_args={"check_same_thread": False},
                echo=echo,
            )
        else:
            self.engine = create_engine(
                self.database_url,
                poolclass=pool.QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,  # Verify connections before using
                echo=echo,
            )

        # expire_on_commit=False keeps ORM objects readable after the session scope closes
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

        self._register_event_listeners()

        logger.info(
            "database_connection_initialized",
            dialect=self.engine.dialect.name,
            pool_size=None if self.is_sqlite else pool_size,
            max_overflow=None if self.is_sqlite else max_overflow,
        )

    def _register_event_listeners(self):
        """Register event listeners for connection lifecycle."""

        @event.listens_for(self.engine, "connect")
        def receive_connect(dbapi_conn, connection_record):
            """Called when a new DB connection is created."""
            if self.is_sqlite:
                cursor = dbapi_conn.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
            logger.debug("database_connection_created")

        @event.listens_for(self.engine, "checkout")
        def receive_checkout(dbapi_conn, connection_record, connection_proxy):
            """Called when a connection is retrieved from the pool."""
            logger.debug("database_connection_checkout")

        @event.listens_for(self.engine, "checkin")
        def receive_checkin(dbapi_conn, connection_record):
            """Called when a connection is returned to the pool."""
            logger.debug("database_connection_checkin")

    def create_tables(self):
        """Create all database tables."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("database_tables_created")
        except Exception as e:
            logger.error("database_tables_creation_failed", error=str(e))
            raise

    def drop_tables(self):
        """Drop all database tables (use with caution!)."""
        try:
            Base.metadata.drop_all(bind=self.engine)
            logger.info("database_tables_dropped")
        except Exception as e:
            logger.error("database_tables_drop_failed", error=str(e))
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Provide a transactional session scope.

        Usage:
            with db.session() as session:
                session.add(obj)
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Check if database connection is healthy."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except OperationalError as e:
            logger.error("database_health_check_failed", error=str(e))
            return False

    def get_pool_status(self) -> dict:
        """Get connection pool status."""
        db_pool = self.engine.pool
        if not isinstance(db_pool, pool.QueuePool):
            return {"pool": type(db_pool).__name__}
        return {
            "size": db_pool.size(),
            "checked_in": db_pool.checkedin(),
            "checked_out": db_pool.checkedout(),
            "overflow": db_pool.overflow(),
        }

    def close(self):
        """Close all database connections."""
        self.engine.dispose()
        logger.info("database_connection_closed")


# Global database connection instance
_db_connection: Optional[DatabaseConnection] = None


def init_db(database_url: Optional[str] = None, **kwargs) -> DatabaseConnection:
    """Initialize global database connection."""
    global _db_connection
    _db_connection = DatabaseConnection(database_url=database_url, **kwargs)
    return _db_connection


def get_db() -> DatabaseConnection:
    """Get global database connection instance."""
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db_connection

