"""
Database-backed key-value store.
Uses SQLite through SQLAlchemy for persistent state storage.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, Column, String, DateTime, Text
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from .kv_store import KeyValueStore

Base = declarative_base()


class KVEntry(Base):
    """One stored key with its JSON-encoded value."""
    __tablename__ = 'kv_entries'

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow)


class SqliteStore(KeyValueStore):
    """SQLite-backed persistent store."""

    def __init__(self, db_path: str = "walker_state/state.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(f"sqlite:///{db_path}", echo=False)
        Base.metadata.create_all(self._engine)
        self._Session = sessionmaker(bind=self._engine)

    def _get_session(self) -> Session:
        return self._Session()

    def get(self, key: str, default: Any = None) -> Any:
        session = self._get_session()
        try:
            entry = session.get(KVEntry, key)
            if entry is None:
                return default
            return json.loads(entry.value)
        finally:
            session.close()

    def set(self, key: str, value: Any):
        session = self._get_session()
        try:
            encoded = json.dumps(value, ensure_ascii=False)
            entry = session.get(KVEntry, key)
            if entry:
                entry.value = encoded
                entry.updated_at = datetime.utcnow()
            else:
                session.add(KVEntry(key=key, value=encoded, updated_at=datetime.utcnow()))
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def remove(self, key: str):
        session = self._get_session()
        try:
            session.query(KVEntry).filter(KVEntry.key == key).delete()
            session.commit()
        finally:
            session.close()

    def close(self):
        self._engine.dispose()
