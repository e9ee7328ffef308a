from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import DATABASE_URL, SQLITE_BUSY_TIMEOUT


def build_engine(url: str = DATABASE_URL) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Request handlers run in a thread pool; each thread checks out its own connection
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}

    db_engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)

    if db_engine.dialect.name == "sqlite":
        @event.listens_for(db_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return db_engine


engine = build_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
