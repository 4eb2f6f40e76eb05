from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from duel_ledger.core.config import settings
from duel_ledger.db import DatabaseConfig, create_db_engine, create_session_factory
from duel_ledger.ingestion.providers.base.client import BaseHttpClient


def make_session_factory() -> sessionmaker[Session]:
    engine = create_db_engine(
        DatabaseConfig(database_url=settings.database_url, echo=settings.db_echo)
    )
    return create_session_factory(engine)


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Context-managed DB session for CLI commands.
    Ensures proper close and rolls back on exception.
    """
    SessionLocal = make_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def make_http_client() -> BaseHttpClient:
    return BaseHttpClient(timeout_s=settings.http_timeout_s)
