from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def _create_engine() -> Engine:
    url = get_settings().database_url
    if not url.startswith("sqlite"):
        return create_engine(url)
    # In-memory databases live per connection; every session must share one.
    pool_args = {"poolclass": StaticPool} if _is_memory_url(url) else {}
    eng = create_engine(url, connect_args={"check_same_thread": False}, **pool_args)
    event.listen(
        eng,
        "connect",
        _enable_foreign_keys if _is_memory_url(url) else _enable_sqlite_pragmas,
    )
    return eng


def _enable_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for budgets, categories, transactions and users."""


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
