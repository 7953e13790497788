"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing)
and SQLite (persistence). All monetary values stored as Decimal strings.

Writes that must land together go through ``atomic()``: the backend lock is
held for the whole unit and any exception restores the pre-unit state.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Sequence, Set, Type, TypeVar, Union
from decimal import Decimal
from datetime import date, datetime, timezone
from enum import Enum
from collections import defaultdict
import copy
import sqlite3
import json
import threading
from dataclasses import dataclass, fields
from pathlib import Path
from contextlib import contextmanager


R = TypeVar('R', bound='StorageRecord')


def to_storable(value: Any) -> Any:
    """Convert a field value into a JSON-safe representation"""
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_storable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_storable(v) for k, v in value.items()}
    return value


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    return all(key in record and record[key] == value for key, value in filters.items())


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {f.name: to_storable(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls: Type[R], data: Dict[str, Any]) -> R:
        """Create instance from dictionary"""
        data = dict(data)
        if 'created_at' in data and isinstance(data['created_at'], str):
            data['created_at'] = datetime.fromisoformat(data['created_at'])
        if 'updated_at' in data and isinstance(data['updated_at'], str):
            data['updated_at'] = datetime.fromisoformat(data['updated_at'])

        return cls(**data)

    def touch(self, now: datetime) -> None:
        """Stamp the record as modified at ``now``"""
        self.updated_at = now


class StorageInterface(ABC):
    """
    Table-of-documents backend contract

    Every record is a JSON-safe dict keyed by id within a named table.
    Subclasses supply the transaction hooks used by ``atomic()``.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._in_transaction = False

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record, or None"""

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Records whose top-level fields equal every filter value"""

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record; False if it was not there"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @abstractmethod
    def _begin(self) -> None:
        pass

    @abstractmethod
    def _commit(self) -> None:
        pass

    @abstractmethod
    def _rollback(self) -> None:
        pass

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Every record in a table"""
        return self.find(table, {})

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextmanager
    def atomic(self):
        """
        Run a block of writes as one unit

        Nested calls join the outermost unit; only the outermost commits
        or rolls back.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return

            self._begin()
            self._in_transaction = True
            try:
                yield
            except Exception:
                self._rollback()
                raise
            else:
                self._commit()
            finally:
                self._in_transaction = False


class InMemoryStorage(StorageInterface):
    """Dict-backed storage for tests; a failed unit restores its snapshot"""

    def __init__(self):
        super().__init__()
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None

    @staticmethod
    def _detach(record: Dict[str, Any]) -> Dict[str, Any]:
        # Callers never share nested state with the store
        return json.loads(json.dumps(record, default=str))

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._tables[table][record_id] = self._detach(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._tables[table].get(record_id)
            return self._detach(record) if record is not None else None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                self._detach(record)
                for record in self._tables[table].values()
                if _matches(record, filters)
            ]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._tables[table].pop(record_id, None) is not None

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._tables[table]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables[table])

    def _begin(self) -> None:
        self._snapshot = copy.deepcopy(self._tables)

    def _commit(self) -> None:
        self._snapshot = None

    def _rollback(self) -> None:
        self._tables, self._snapshot = self._snapshot, None

    def close(self) -> None:
        pass


class SQLiteStorage(StorageInterface):
    """
    SQLite storage: one JSON document per row

    Equality filters are evaluated in SQL with ``json_extract``.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        # DEFERRED: the first write inside a unit opens the transaction
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._known_tables: Set[str] = set()

        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")

    def _autocommit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _execute(self, table: str, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Run a statement against ``table``, creating the table on first use"""
        if table not in self._known_tables:
            self._connection.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "id TEXT PRIMARY KEY, data TEXT NOT NULL, "
                "created_at TEXT NOT NULL, updated_at TEXT NOT NULL)"
            )
            self._connection.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_created_at ON {table}(created_at)"
            )
            self._autocommit()
            self._known_tables.add(table)
        return self._connection.execute(sql, params)

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        stamp = datetime.now(timezone.utc).isoformat()
        with self._lock:
            # The row keeps its original created_at across replacements
            self._execute(table, f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?, COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?), ?)
            """, (record_id, json.dumps(data, default=str), record_id, stamp, stamp))
            self._autocommit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            row = self._execute(table, f"SELECT data FROM {table} WHERE id = ?", (record_id,)).fetchone()
        return json.loads(row['data']) if row else None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        clauses = []
        params: List[Any] = []
        for key, value in filters.items():
            if value is None:
                clauses.append("json_type(data, ?) = 'null'")
                params.append(f"$.{key}")
            else:
                clauses.append("json_extract(data, ?) = ?")
                params.extend([f"$.{key}", value])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._lock:
            rows = self._execute(table, f"SELECT data FROM {table} {where} ORDER BY created_at", params).fetchall()
        return [json.loads(row['data']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            removed = self._execute(table, f"DELETE FROM {table} WHERE id = ?", (record_id,)).rowcount
            self._autocommit()
        return removed > 0

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            row = self._execute(table, f"SELECT 1 FROM {table} WHERE id = ? LIMIT 1", (record_id,)).fetchone()
        return row is not None

    def count(self, table: str) -> int:
        with self._lock:
            return self._execute(table, f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def _begin(self) -> None:
        # Nothing to issue: the DEFERRED connection begins on the first write
        pass

    def _commit(self) -> None:
        self._connection.commit()

    def _rollback(self) -> None:
        self._connection.rollback()
        # Tables created inside the unit were rolled back with it
        self._known_tables.clear()

    def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class StorageManager:
    """Typed record access on top of a storage backend"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def save_record(self, record: StorageRecord, table: str) -> None:
        """Save a StorageRecord to storage"""
        self.storage.save(table, record.id, record.to_dict())

    def load_record(self, record_type: Type[R], table: str, record_id: str) -> Optional[R]:
        """Load and convert to StorageRecord"""
        data = self.storage.load(table, record_id)
        if data:
            return record_type.from_dict(data)
        return None

    def load_all_records(self, record_type: Type[R], table: str) -> List[R]:
        """Load all records and convert to StorageRecord objects"""
        all_data = self.storage.load_all(table)
        return [record_type.from_dict(data) for data in all_data]

    def find_records(self, record_type: Type[R], table: str, filters: Dict[str, Any]) -> List[R]:
        """Find records and convert to StorageRecord objects"""
        found_data = self.storage.find(table, filters)
        return [record_type.from_dict(data) for data in found_data]

    def close(self) -> None:
        """Close storage backend"""
        self.storage.close()


def create_storage(backend: str = "memory", db_path: Union[str, Path] = ":memory:") -> StorageInterface:
    """Build a storage backend by name"""
    if backend == "memory":
        return InMemoryStorage()
    if backend == "sqlite":
        return SQLiteStorage(db_path)
    raise ValueError(f"Unsupported storage backend: {backend}")
