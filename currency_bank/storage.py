"""
Storage Backend Module

Provides the abstract storage interface for bank balances and bank history,
with implementations for in-memory (testing) and SQLite (persistence).
All monetary values are stored as Decimal strings.

Every backend serialises transactions on one re-entrant lock that is held for
the whole atomic() block, so a read-modify-write on a balance row can never
interleave with another writer on the same handle.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
import copy
import sqlite3
import threading
from pathlib import Path
from contextlib import contextmanager

from .currency import coin_type_names
from .errors import PersistenceError


BANK_TABLE = "currency_bank"
HISTORY_TABLE = "currency_bank_history"
CHANGE_TYPES = ("deposit", "withdraw")


class StorageInterface(ABC):
    """Abstract interface for bank storage backends"""

    def __init__(self):
        self._lock = threading.RLock()
        self._in_transaction = False

    @abstractmethod
    def load_balance(self, owner: str, coin_type: str) -> Optional[Dict[str, Any]]:
        """Load the balance row for (owner, coin_type), or None if absent"""
        pass

    @abstractmethod
    def insert_balance(
        self,
        owner: str,
        coin_type: str,
        balance: str,
        interest_rate: str,
        last_interest_time: str
    ) -> int:
        """Insert a new balance row and return its bank_id"""
        pass

    @abstractmethod
    def update_balance(
        self,
        owner: str,
        coin_type: str,
        balance: str,
        interest_rate: Optional[str] = None,
        last_interest_time: Optional[str] = None
    ) -> None:
        """Update an existing balance row; None leaves a column unchanged"""
        pass

    @abstractmethod
    def append_history(
        self,
        owner: str,
        change_amount: str,
        change_type: str,
        coin_type: str,
        note: str,
        created_time: str
    ) -> int:
        """Append a history row and return its history_id"""
        pass

    @abstractmethod
    def find_history(self, owner: str, coin_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """History rows for an owner, oldest first"""
        pass

    @abstractmethod
    def list_owners(self) -> List[str]:
        """Every owner with at least one balance row"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """
        Context manager for atomic operations

        Holds the storage lock until commit or rollback. A nested block joins
        the enclosing transaction.
        """
        with self._lock:
            if self._in_transaction:
                yield
                return
            self.begin_transaction()
            self._in_transaction = True
            try:
                yield
                self.commit()
            except Exception:
                self.rollback()
                raise
            finally:
                self._in_transaction = False


def _validate_row(coin_type: str, change_type: Optional[str] = None) -> None:
    """Enforce the enum columns of the schema"""
    if coin_type not in coin_type_names():
        raise PersistenceError(f"Invalid coin_type for storage: {coin_type}")
    if change_type is not None and change_type not in CHANGE_TYPES:
        raise PersistenceError(f"Invalid change_type for storage: {change_type}")


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        super().__init__()
        self._balances: Dict[tuple, Dict[str, Any]] = {}
        self._history: List[Dict[str, Any]] = []
        self._next_bank_id = 1
        self._next_history_id = 1
        self._snapshot = None

    def load_balance(self, owner: str, coin_type: str) -> Optional[Dict[str, Any]]:
        """Load a balance row from memory"""
        with self._lock:
            row = self._balances.get((owner, coin_type))
            # Copy to prevent external mutation
            return dict(row) if row else None

    def insert_balance(self, owner, coin_type, balance, interest_rate, last_interest_time) -> int:
        """Insert a balance row, enforcing UNIQUE(uuid, coin_type)"""
        with self._lock:
            _validate_row(coin_type)
            if (owner, coin_type) in self._balances:
                raise PersistenceError(
                    f"Balance row already exists for {owner}/{coin_type}"
                )
            bank_id = self._next_bank_id
            self._next_bank_id += 1
            self._balances[(owner, coin_type)] = {
                "bank_id": bank_id,
                "uuid": owner,
                "coin_type": coin_type,
                "balance": balance,
                "interest_rate": interest_rate,
                "last_interest_time": last_interest_time
            }
            return bank_id

    def update_balance(self, owner, coin_type, balance, interest_rate=None, last_interest_time=None) -> None:
        """Update a balance row in memory"""
        with self._lock:
            row = self._balances.get((owner, coin_type))
            if row is None:
                raise PersistenceError(f"No balance row for {owner}/{coin_type}")
            row["balance"] = balance
            if interest_rate is not None:
                row["interest_rate"] = interest_rate
            if last_interest_time is not None:
                row["last_interest_time"] = last_interest_time

    def append_history(self, owner, change_amount, change_type, coin_type, note, created_time) -> int:
        """Append a history row in memory"""
        with self._lock:
            _validate_row(coin_type, change_type)
            history_id = self._next_history_id
            self._next_history_id += 1
            self._history.append({
                "history_id": history_id,
                "uuid": owner,
                "change_amount": change_amount,
                "change_type": change_type,
                "coin_type": coin_type,
                "note": note,
                "created_time": created_time
            })
            return history_id

    def find_history(self, owner: str, coin_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Find history rows for an owner"""
        with self._lock:
            return [
                dict(row) for row in self._history
                if row["uuid"] == owner and (coin_type is None or row["coin_type"] == coin_type)
            ]

    def list_owners(self) -> List[str]:
        """Distinct owners in first-seen order"""
        with self._lock:
            owners = []
            for row in sorted(self._balances.values(), key=lambda r: r["bank_id"]):
                if row["uuid"] not in owners:
                    owners.append(row["uuid"])
            return owners

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            if table == BANK_TABLE:
                return len(self._balances)
            if table == HISTORY_TABLE:
                return len(self._history)
            raise PersistenceError(f"Unknown table: {table}")

    def begin_transaction(self) -> None:
        """Snapshot state so rollback can restore it"""
        self._snapshot = (
            copy.deepcopy(self._balances),
            copy.deepcopy(self._history),
            self._next_bank_id,
            self._next_history_id
        )

    def commit(self) -> None:
        """Drop the snapshot"""
        self._snapshot = None

    def rollback(self) -> None:
        """Restore the snapshot taken at begin"""
        if self._snapshot is not None:
            (self._balances, self._history,
             self._next_bank_id, self._next_history_id) = self._snapshot
            self._snapshot = None

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        super().__init__()
        self.db_path = str(db_path)
        try:
            # Set isolation_level to 'DEFERRED' to enable manual transaction control
            self._connection = sqlite3.connect(
                self.db_path, check_same_thread=False, isolation_level='DEFERRED'
            )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e
        self._connection.row_factory = sqlite3.Row

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._execute("PRAGMA journal_mode = WAL")
                self._execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

        self._ensure_schema()

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a statement, translating driver errors"""
        if self._connection is None:
            raise PersistenceError("Storage is closed")
        try:
            return self._connection.execute(sql, params)
        except sqlite3.Error as e:
            raise PersistenceError(f"Database error: {e}") from e

    def _commit_unless_in_transaction(self) -> None:
        if not self._in_transaction:
            try:
                self._connection.commit()
            except sqlite3.Error as e:
                raise PersistenceError(f"Commit failed: {e}") from e

    def _ensure_schema(self) -> None:
        """Create the bank tables if they don't already exist"""
        coin_types = ", ".join(f"'{name}'" for name in coin_type_names())
        change_types = ", ".join(f"'{name}'" for name in CHANGE_TYPES)
        with self._lock:
            self._execute(f"""
                CREATE TABLE IF NOT EXISTS {BANK_TABLE} (
                    bank_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid VARCHAR(36) NOT NULL,
                    coin_type TEXT NOT NULL CHECK (coin_type IN ({coin_types})),
                    balance TEXT NOT NULL DEFAULT '0',
                    interest_rate TEXT NOT NULL DEFAULT '0',
                    last_interest_time TEXT,
                    UNIQUE (uuid, coin_type)
                )
            """)
            self._execute(f"""
                CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
                    history_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    uuid VARCHAR(36) NOT NULL,
                    change_amount TEXT NOT NULL,
                    change_type TEXT NOT NULL CHECK (change_type IN ({change_types})),
                    coin_type TEXT NOT NULL CHECK (coin_type IN ({coin_types})),
                    note TEXT,
                    created_time TEXT NOT NULL
                )
            """)
            self._execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{HISTORY_TABLE}_uuid
                ON {HISTORY_TABLE}(uuid)
            """)
            self._connection.commit()

    def load_balance(self, owner: str, coin_type: str) -> Optional[Dict[str, Any]]:
        """Load a balance row from SQLite"""
        with self._lock:
            cursor = self._execute(f"""
                SELECT bank_id, uuid, coin_type, balance, interest_rate, last_interest_time
                FROM {BANK_TABLE} WHERE uuid = ? AND coin_type = ?
            """, (owner, coin_type))
            row = cursor.fetchone()
            return dict(row) if row else None

    def insert_balance(self, owner, coin_type, balance, interest_rate, last_interest_time) -> int:
        """Insert a balance row into SQLite"""
        with self._lock:
            cursor = self._execute(f"""
                INSERT INTO {BANK_TABLE} (uuid, coin_type, balance, interest_rate, last_interest_time)
                VALUES (?, ?, ?, ?, ?)
            """, (owner, coin_type, balance, interest_rate, last_interest_time))
            self._commit_unless_in_transaction()
            return cursor.lastrowid

    def update_balance(self, owner, coin_type, balance, interest_rate=None, last_interest_time=None) -> None:
        """Update a balance row in SQLite"""
        with self._lock:
            cursor = self._execute(f"""
                UPDATE {BANK_TABLE}
                SET balance = ?,
                    interest_rate = COALESCE(?, interest_rate),
                    last_interest_time = COALESCE(?, last_interest_time)
                WHERE uuid = ? AND coin_type = ?
            """, (balance, interest_rate, last_interest_time, owner, coin_type))
            if cursor.rowcount == 0:
                raise PersistenceError(f"No balance row for {owner}/{coin_type}")
            self._commit_unless_in_transaction()

    def append_history(self, owner, change_amount, change_type, coin_type, note, created_time) -> int:
        """Append a history row to SQLite"""
        with self._lock:
            cursor = self._execute(f"""
                INSERT INTO {HISTORY_TABLE} (uuid, change_amount, change_type, coin_type, note, created_time)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (owner, change_amount, change_type, coin_type, note, created_time))
            self._commit_unless_in_transaction()
            return cursor.lastrowid

    def find_history(self, owner: str, coin_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Find history rows for an owner"""
        with self._lock:
            if coin_type is None:
                cursor = self._execute(f"""
                    SELECT * FROM {HISTORY_TABLE} WHERE uuid = ? ORDER BY history_id
                """, (owner,))
            else:
                cursor = self._execute(f"""
                    SELECT * FROM {HISTORY_TABLE} WHERE uuid = ? AND coin_type = ?
                    ORDER BY history_id
                """, (owner, coin_type))
            return [dict(row) for row in cursor.fetchall()]

    def list_owners(self) -> List[str]:
        """Distinct owners in first-seen order"""
        with self._lock:
            cursor = self._execute(f"""
                SELECT uuid FROM {BANK_TABLE} GROUP BY uuid ORDER BY MIN(bank_id)
            """)
            return [row['uuid'] for row in cursor.fetchall()]

    def count(self, table: str) -> int:
        """Count records in table"""
        if table not in (BANK_TABLE, HISTORY_TABLE):
            raise PersistenceError(f"Unknown table: {table}")
        with self._lock:
            cursor = self._execute(f"SELECT COUNT(*) as count FROM {table}")
            return cursor.fetchone()['count']

    def commit(self) -> None:
        """Commit current transaction"""
        try:
            self._connection.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        """Rollback current transaction"""
        if self._connection is not None:
            self._connection.rollback()

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
