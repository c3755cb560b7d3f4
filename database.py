from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings


class Base(DeclarativeBase):
    pass


def _sqlite_pragmas(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    # scheduler thread and request threads share one file
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


def build_engine(url: str, *, echo: bool = False) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)
    eng = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    if ":memory:" not in url:
        event.listen(eng, "connect", _sqlite_pragmas)
    return eng


engine = build_engine(get_settings().database_url, echo=get_settings().sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_schema(bind: Engine = engine) -> None:
    """Create missing tables straight from the models. Alembic stays the
    source of truth for upgrades; this only bootstraps an empty database."""
    import models  # noqa: F401

    Base.metadata.create_all(bind)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
