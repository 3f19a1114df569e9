import os
from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from .env_settings import get_env


class Base(DeclarativeBase):
    pass


def _db_url(sqlite_path: str | None = None) -> str:
    raw = (sqlite_path or get_env().sqlite_path or "").strip() or "data/settings.db"
    if raw == ":memory:":
        return "sqlite://"
    p = Path(raw)
    if not p.is_absolute():
        p = (Path.cwd() / p).resolve()

    db_dir = str(p.parent)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    return f"sqlite:///{p.as_posix()}"


def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    # WAL can fail on some filesystems (e.g. Docker bind mounts on Windows/WSL2).
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
    except Exception:
        cursor.execute("PRAGMA journal_mode=DELETE")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_sqlite_engine(sqlite_path: str | None = None) -> Engine:
    url = _db_url(sqlite_path)
    kwargs = {}
    if url == "sqlite://":
        # one shared connection, otherwise every worker thread sees its own empty DB
        kwargs["poolclass"] = StaticPool
    engine = create_engine(
        url,
        echo=False,
        future=True,
        connect_args={"check_same_thread": False},
        **kwargs,
    )
    event.listen(engine, "connect", _set_sqlite_pragma)
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
