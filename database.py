from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from config import settings


def build_engine(url: str, **kwargs):
    """Create an engine; SQLite gets WAL + foreign keys so readers never block the importer."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    db_engine = create_engine(url, **kwargs)

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            if url != "sqlite://" and ":memory:" not in url:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    # Streaming responses open their own session instead of borrowing the request one
    return SessionLocal


def is_sqlite(db) -> bool:
    return db.get_bind().dialect.name == "sqlite"


def begin_isolated(db, level: str):
    """Pin the session's transaction to `level` before its first statement.
    SQLite is left alone; it has no per-transaction isolation levels."""
    if level and not is_sqlite(db):
        db.connection(execution_options={"isolation_level": level})
