from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from app.core.config import settings


def _sqlite_pragmas(engine):
    """Per-connection SQLite setup.

    pysqlite's implicit transaction handling is switched off and BEGIN is
    emitted by SQLAlchemy instead, so transactions and uniqueness failures
    behave the same as on Postgres.
    """

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(url: str, timeout_seconds: float):
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,  # Allow SQLite to work with FastAPI
                "timeout": timeout_seconds,
            },
        )
        return _sqlite_pragmas(engine)

    # Postgres: bound every statement server-side and the connect/checkout client-side
    timeout_ms = int(timeout_seconds * 1000)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args={
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={timeout_ms}",
        },
    )


engine = build_engine(settings.DATABASE_URL, settings.STORAGE_TIMEOUT_SECONDS)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
