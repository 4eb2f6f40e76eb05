from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker


@dataclass(frozen=True)
class DatabaseConfig:
    database_url: str
    echo: bool = False
    # Detail workers write from several threads; SQLite makes them wait for the lock.
    sqlite_busy_timeout_s: float = 30.0


def _sqlite_on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    # WAL lets readers keep going while one worker commits a match.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def create_db_engine(cfg: DatabaseConfig) -> Engine:
    kwargs: dict[str, Any] = {}
    is_sqlite = cfg.database_url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"timeout": cfg.sqlite_busy_timeout_s}

    engine = create_engine(cfg.database_url, echo=cfg.echo, pool_pre_ping=True, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _sqlite_on_connect)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
