from collections.abc import Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from receipt_ai.core.config import get_settings

settings = get_settings()

engine = None
if settings.database_url:
    connect_args: dict[str, object] = {}

    if settings.database_url.startswith("sqlite"):
        # Receipt processing runs in a background task after the request
        # session is closed, so SQLite connections must cross threads.
        connect_args = {"check_same_thread": False, "timeout": 30}

    engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)

    if settings.database_url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine) if engine else None


def get_db() -> Generator[Session, None, None]:
    if SessionLocal is None:
        raise RuntimeError("DATABASE_URL is not configured")
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def session_factory_for(db: Session) -> Callable[[], Session]:
    """Return a factory producing new sessions bound to the same engine as *db*.

    Background work must not reuse the request session (it is closed once the
    response is sent), but it must talk to the same database, including the
    in-memory engines tests install through dependency overrides.
    """
    return sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())
