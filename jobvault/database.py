"""
Database schema and connection management.

Uses SQLite with SQLAlchemy as a key-value backend for snapshots, the
snapshot index and the live application set.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, Column, String, DateTime, LargeBinary
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .errors import StoreIOError
from .logger import get_logger
from .retry import RetryError, exponential_backoff, is_transient_error
from .storage import KeyValueStore

Base = declarative_base()

logger = get_logger()


class KVEntry(Base):
    """One stored value."""

    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)  # backup_<id>, backup_metadata, applications, ...
    value = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def _engine(db_path: Path):
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()


_db_retry = exponential_backoff(max_retries=3, base_delay=0.1, exceptions=(OperationalError,))


class SQLiteStore(KeyValueStore):
    """Key-value store on a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        try:
            init_database(self.db_path)
        except SQLAlchemyError as e:
            logger.error("Cannot open store", db_path=str(self.db_path), error=str(e))
            raise StoreIOError(f"Cannot open store at {self.db_path}: {e}") from e
        self._engine = _engine(self.db_path)
        self._Session = sessionmaker(bind=self._engine)

    def _run(self, operation: str, func):
        def _attempt():
            try:
                return func()
            except SQLAlchemyError as e:
                # only transient OperationalErrors go back to the retry decorator
                if isinstance(e, OperationalError) and is_transient_error(e):
                    raise
                logger.error("Store operation failed", operation=operation, error=str(e))
                raise StoreIOError(f"{operation} failed on {self.db_path}: {e}") from e

        try:
            return _db_retry(_attempt)()
        except RetryError as e:
            logger.error("Store operation failed", operation=operation, error=str(e))
            raise StoreIOError(f"{operation} failed on {self.db_path}: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        def _get():
            with self._Session() as session:
                entry = session.get(KVEntry, key)
                return bytes(entry.value) if entry is not None else None

        return self._run("get", _get)

    def set(self, key: str, value: bytes) -> None:
        def _set():
            with self._Session() as session:
                entry = session.get(KVEntry, key)
                if entry is None:
                    session.add(KVEntry(key=key, value=bytes(value)))
                else:
                    entry.value = bytes(value)
                session.commit()

        self._run("set", _set)

    def remove(self, key: str) -> None:
        def _remove():
            with self._Session() as session:
                entry = session.get(KVEntry, key)
                if entry is not None:
                    session.delete(entry)
                    session.commit()

        self._run("remove", _remove)

    def list_keys(self, prefix: str = "") -> List[str]:
        def _list():
            with self._Session() as session:
                query = session.query(KVEntry.key)
                if prefix:
                    query = query.filter(KVEntry.key.startswith(prefix, autoescape=True))
                return sorted(row[0] for row in query.all())

        return self._run("list_keys", _list)

    def close(self) -> None:
        self._engine.dispose()
