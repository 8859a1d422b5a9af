from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import settings

# Execution option that asks for a write-locking transaction.
# On SQLite this becomes BEGIN IMMEDIATE; other backends ignore it and
# rely on row locks taken by the reservation code.
IMMEDIATE = "booking_immediate"


def build_engine(url: str, busy_timeout: float | None = None) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections get foreign keys enabled, WAL journaling for file
    databases and manual transaction control, so that reservations can
    open their transaction with BEGIN IMMEDIATE.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    timeout = settings.sqlite_busy_timeout if busy_timeout is None else busy_timeout
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False, "timeout": timeout},
    )

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, _):
        # pysqlite must not emit BEGIN itself; see _sqlite_begin
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        if conn.get_execution_options().get(IMMEDIATE):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")

    return engine


engine = build_engine(settings.resolved_database_url)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
