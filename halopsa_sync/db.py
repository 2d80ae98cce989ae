"""Entity store access for the sync engine.

The engine only needs a generic create / get / filter / update / list
interface over named entity types (Project, Task, Customer, AuditLog,
IntegrationSettings). `SQLiteEntityStore` implements it with one JSON
document per row.
"""

import json
import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .config import config

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """Data-access interface onto the internal entity store."""

    @abstractmethod
    def create(self, entity_type: str, data: dict) -> dict:
        """Create a record and return it with its assigned id."""

    @abstractmethod
    def get(self, entity_type: str, entity_id: str) -> Optional[dict]:
        """Get a record by id."""

    @abstractmethod
    def filter(self, entity_type: str, criteria: dict) -> list[dict]:
        """Get records whose fields equal every value in criteria."""

    @abstractmethod
    def update(self, entity_type: str, entity_id: str, updates: dict) -> dict:
        """Merge updates into a record and return the new record."""

    @abstractmethod
    def list(self, entity_type: str, limit: Optional[int] = None) -> list[dict]:
        """List records, newest first."""

    def first(self, entity_type: str, criteria: dict) -> Optional[dict]:
        """First record matching criteria, or None."""
        rows = self.filter(entity_type, criteria)
        return rows[0] if rows else None


class SQLiteEntityStore(EntityStore):
    """SQLite-backed entity store."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or config.DB_PATH)
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self):
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with WAL mode."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout = 3000")
        return conn

    @contextmanager
    def connection(self):
        """Context manager for database connections."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entities (
                    entity_type TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                    updated_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now')),
                    PRIMARY KEY (entity_type, id)
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_entities_type ON entities(entity_type, created_at)")

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> dict:
        record = json.loads(row['data'])
        record['id'] = row['id']
        return record

    # =========================================================================
    # CRUD
    # =========================================================================

    def create(self, entity_type: str, data: dict) -> dict:
        record = dict(data)
        record['id'] = str(record.get('id') or uuid.uuid4())
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO entities (entity_type, id, data) VALUES (?, ?, ?)",
                (entity_type, record['id'], json.dumps(record)),
            )
        logger.debug(f"Created {entity_type} {record['id']}")
        return record

    def get(self, entity_type: str, entity_id: str) -> Optional[dict]:
        if not entity_id:
            return None
        with self.connection() as conn:
            row = conn.execute(
                "SELECT id, data FROM entities WHERE entity_type = ? AND id = ?",
                (entity_type, str(entity_id)),
            ).fetchone()
            return self._row_to_record(row) if row else None

    def filter(self, entity_type: str, criteria: dict) -> list[dict]:
        if set(criteria) == {'id'}:
            record = self.get(entity_type, criteria['id'])
            return [record] if record else []

        with self.connection() as conn:
            rows = conn.execute(
                "SELECT id, data FROM entities WHERE entity_type = ? ORDER BY created_at, rowid",
                (entity_type,),
            ).fetchall()

        records = [self._row_to_record(r) for r in rows]
        return [
            r for r in records
            if all(r.get(key) == value for key, value in criteria.items())
        ]

    def update(self, entity_type: str, entity_id: str, updates: dict) -> dict:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT id, data FROM entities WHERE entity_type = ? AND id = ?",
                (entity_type, str(entity_id)),
            ).fetchone()
            if not row:
                raise KeyError(f"{entity_type} {entity_id} not found")

            record = self._row_to_record(row)
            record.update(updates)
            record['id'] = row['id']
            conn.execute("""
                UPDATE entities
                SET data = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')
                WHERE entity_type = ? AND id = ?
            """, (json.dumps(record), entity_type, row['id']))
        return record

    def list(self, entity_type: str, limit: Optional[int] = None) -> list[dict]:
        query = "SELECT id, data FROM entities WHERE entity_type = ? ORDER BY created_at DESC, rowid DESC"
        params: tuple = (entity_type,)
        if limit:
            query += " LIMIT ?"
            params = (entity_type, limit)
        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_record(r) for r in rows]
