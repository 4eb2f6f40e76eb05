from duel_ledger.db.base import Base
from duel_ledger.db.engine import DatabaseConfig, create_db_engine, create_session_factory

__all__ = [
    "Base",
    "DatabaseConfig",
    "create_db_engine",
    "create_session_factory",
]
