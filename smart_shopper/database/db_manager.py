"""
Document store for Smart Shopper.

Keeps the per-user collections (inventory, purchase history, config, audit
log) in SQLite, commits write batches atomically and pushes fresh snapshots
to subscribers after every commit.
"""

import json
import sqlite3
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..models import AuditLogEntry, InventoryItem, PurchaseHistoryEntry, UserConfig
from ..utils import get_logger


class Collection(str, Enum):
    """Per-user document collections."""
    INVENTORY = "inventory"
    PURCHASE_HISTORY = "purchase_history"
    USER_CONFIG = "user_config"
    AUDIT_LOG = "audit_log"


Listener = Callable[[Any], None]

# Snapshot sizes pushed to subscribers
HISTORY_SNAPSHOT_LIMIT = 100
AUDIT_SNAPSHOT_LIMIT = 50

CONFIG_COLUMNS = ("spend_cap_monthly", "current_month_spend", "vendor_allowlist")


class WriteBatch:
    """
    A group of writes committed in a single transaction.

    Either every operation lands or none does.
    """

    def __init__(self, db_manager: "DatabaseManager") -> None:
        self._db = db_manager
        self._operations: List[Tuple[str, str, tuple, Collection]] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def _add(self, user_id: str, query: str, params: tuple, collection: Collection) -> "WriteBatch":
        if self._committed:
            raise RuntimeError("Write batch has already been committed")
        self._operations.append((user_id, query, params, collection))
        return self

    def set_inventory_item(self, user_id: str, item: InventoryItem) -> "WriteBatch":
        """Create or fully replace an inventory document."""
        query = """
            INSERT OR REPLACE INTO inventory (
                user_id, item_id, name, quantity, unit, restock_level,
                daily_use, last_used, predicted_run_out_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            user_id,
            item.id,
            item.name,
            item.quantity,
            item.unit,
            item.restock_level,
            item.daily_use,
            item.last_used.isoformat(),
            item.predicted_run_out_date.isoformat() if item.predicted_run_out_date else None,
        )
        return self._add(user_id, query, params, Collection.INVENTORY)

    def set_predicted_run_out_date(
        self,
        user_id: str,
        item_id: str,
        run_out_date: Optional[date]
    ) -> "WriteBatch":
        """Merge a forecast date into an existing inventory document."""
        query = """
            UPDATE inventory SET predicted_run_out_date = ?
            WHERE user_id = ? AND item_id = ?
        """
        params = (run_out_date.isoformat() if run_out_date else None, user_id, item_id)
        return self._add(user_id, query, params, Collection.INVENTORY)

    def delete_inventory_item(self, user_id: str, item_id: str) -> "WriteBatch":
        query = "DELETE FROM inventory WHERE user_id = ? AND item_id = ?"
        return self._add(user_id, query, (user_id, item_id), Collection.INVENTORY)

    def add_history(self, user_id: str, entry: PurchaseHistoryEntry) -> "WriteBatch":
        """Append a purchase history record."""
        query = """
            INSERT INTO purchase_history (
                user_id, entry_id, item, quantity, vendor, cost, date, method
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        params = (
            user_id,
            entry.id,
            entry.item,
            entry.quantity,
            entry.vendor,
            entry.cost,
            entry.date.isoformat(),
            entry.method,
        )
        return self._add(user_id, query, params, Collection.PURCHASE_HISTORY)

    def set_user_config(self, user_id: str, config: UserConfig) -> "WriteBatch":
        """Create or fully replace the config document."""
        return self.update_user_config(user_id, **config.model_dump())

    def update_user_config(self, user_id: str, **fields: Any) -> "WriteBatch":
        """
        Merge fields into the config document, creating it if needed.

        Args:
            user_id: Owner of the config
            **fields: Subset of spend_cap_monthly, current_month_spend,
                vendor_allowlist

        Raises:
            ValueError: On unknown fields
            pydantic.ValidationError: On invalid values
        """
        unknown = set(fields) - set(CONFIG_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")
        if not fields:
            return self

        # Validate the partial document; unset fields keep their defaults
        validated = UserConfig(**fields).model_dump(include=set(fields))
        columns = [column for column in CONFIG_COLUMNS if column in validated]
        values = [
            json.dumps(validated[column]) if column == "vendor_allowlist" else validated[column]
            for column in columns
        ]

        column_list = ", ".join(columns)
        placeholders = ", ".join("?" for _ in columns)
        assignments = ", ".join(f"{column} = excluded.{column}" for column in columns)
        query = f"""
            INSERT INTO user_config (user_id, {column_list})
            VALUES (?, {placeholders})
            ON CONFLICT(user_id) DO UPDATE SET {assignments}
        """
        return self._add(user_id, query, (user_id, *values), Collection.USER_CONFIG)

    def add_audit_entry(self, user_id: str, entry: AuditLogEntry) -> "WriteBatch":
        query = """
            INSERT INTO audit_log (user_id, log_id, timestamp, action, details)
            VALUES (?, ?, ?, ?, ?)
        """
        params = (user_id, entry.id, entry.timestamp.isoformat(), entry.action, entry.details)
        return self._add(user_id, query, params, Collection.AUDIT_LOG)

    def commit(self) -> None:
        """
        Apply every queued write in one transaction and notify subscribers.

        Raises:
            sqlite3.Error: If any write fails (nothing is applied)
        """
        if self._committed:
            raise RuntimeError("Write batch has already been committed")

        with self._db.get_connection() as conn:
            for _, query, params, _ in self._operations:
                conn.execute(query, params)

        self._committed = True
        touched = {(user_id, collection) for user_id, _, _, collection in self._operations}
        self._db.notify(touched)


class DatabaseManager:
    """
    Manages the SQLite-backed document store.

    Connections are short-lived and opened per transaction.
    """

    def __init__(self, db_path: str) -> None:
        """
        Initialize database manager.

        Args:
            db_path: Path to the database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.schema_path = Path(__file__).parent / "schema.sql"
        self.logger = get_logger("database")

        self._listeners: Dict[Tuple[str, Collection], List[Listener]] = defaultdict(list)
        self._listeners_lock = threading.Lock()

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.

        Commits on success and rolls back on any error.

        Yields:
            sqlite3.Connection
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row

        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize_database(self) -> None:
        """
        Initialize database with schema from schema.sql.

        Creates all tables if they don't exist.
        """
        if not self.schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {self.schema_path}")

        with open(self.schema_path, 'r') as f:
            schema_sql = f.read()

        with self.get_connection() as conn:
            conn.executescript(schema_sql)

        self.logger.info(f"Database initialized at: {self.db_path}")

    def execute_query(
        self,
        query: str,
        params: Optional[Tuple] = None
    ) -> List[sqlite3.Row]:
        """
        Execute a SELECT query and return results.

        Args:
            query: SQL SELECT query
            params: Query parameters (optional)

        Returns:
            List of rows as dict-like objects
        """
        with self.get_connection() as conn:
            cursor = conn.execute(query, params or ())
            return cursor.fetchall()

    def table_exists(self, table_name: str) -> bool:
        query = """
            SELECT name FROM sqlite_master
            WHERE type='table' AND name=?
        """
        rows = self.execute_query(query, (table_name,))
        return len(rows) > 0

    # Writes

    def batch(self) -> WriteBatch:
        """Start a new atomic write batch."""
        return WriteBatch(self)

    def set_inventory_item(self, user_id: str, item: InventoryItem) -> None:
        self.batch().set_inventory_item(user_id, item).commit()

    def delete_inventory_item(self, user_id: str, item_id: str) -> bool:
        """
        Delete an inventory document.

        Returns:
            True if a document was removed
        """
        existed = self.get_inventory_item(user_id, item_id) is not None
        self.batch().delete_inventory_item(user_id, item_id).commit()
        return existed

    def merge_user_config(self, user_id: str, **fields: Any) -> None:
        self.batch().update_user_config(user_id, **fields).commit()

    def add_audit_entry(self, user_id: str, entry: AuditLogEntry) -> None:
        self.batch().add_audit_entry(user_id, entry).commit()

    # Reads

    def get_inventory(self, user_id: str) -> List[InventoryItem]:
        query = "SELECT * FROM inventory WHERE user_id = ? ORDER BY name COLLATE NOCASE"
        rows = self.execute_query(query, (user_id,))
        return [self._row_to_item(row) for row in rows]

    def get_inventory_item(self, user_id: str, item_id: str) -> Optional[InventoryItem]:
        query = "SELECT * FROM inventory WHERE user_id = ? AND item_id = ?"
        rows = self.execute_query(query, (user_id, item_id))
        return self._row_to_item(rows[0]) if rows else None

    def get_purchase_history(
        self,
        user_id: str,
        limit: int = HISTORY_SNAPSHOT_LIMIT
    ) -> List[PurchaseHistoryEntry]:
        """
        Get purchase history, newest first.

        Args:
            user_id: Owner of the history
            limit: Maximum number of entries

        Returns:
            List of PurchaseHistoryEntry
        """
        query = """
            SELECT * FROM purchase_history
            WHERE user_id = ?
            ORDER BY date DESC
            LIMIT ?
        """
        rows = self.execute_query(query, (user_id, limit))
        return [
            PurchaseHistoryEntry(
                id=row['entry_id'],
                item=row['item'],
                quantity=row['quantity'],
                vendor=row['vendor'],
                cost=row['cost'],
                date=datetime.fromisoformat(row['date']),
                method=row['method'],
            )
            for row in rows
        ]

    def get_user_config(self, user_id: str) -> Optional[UserConfig]:
        """Get the config document, or None if the user has none yet."""
        rows = self.execute_query("SELECT * FROM user_config WHERE user_id = ?", (user_id,))
        if not rows:
            return None
        row = rows[0]
        return UserConfig(
            spend_cap_monthly=row['spend_cap_monthly'],
            current_month_spend=row['current_month_spend'],
            vendor_allowlist=json.loads(row['vendor_allowlist']),
        )

    def get_audit_log(self, user_id: str, limit: int = AUDIT_SNAPSHOT_LIMIT) -> List[AuditLogEntry]:
        query = """
            SELECT * FROM audit_log
            WHERE user_id = ?
            ORDER BY timestamp DESC
            LIMIT ?
        """
        rows = self.execute_query(query, (user_id, limit))
        return [
            AuditLogEntry(
                id=row['log_id'],
                timestamp=datetime.fromisoformat(row['timestamp']),
                action=row['action'],
                details=row['details'],
            )
            for row in rows
        ]

    def _row_to_item(self, row: sqlite3.Row) -> InventoryItem:
        run_out = row['predicted_run_out_date']
        return InventoryItem(
            id=row['item_id'],
            name=row['name'],
            quantity=row['quantity'],
            unit=row['unit'],
            restock_level=row['restock_level'],
            daily_use=row['daily_use'],
            last_used=datetime.fromisoformat(row['last_used']),
            predicted_run_out_date=date.fromisoformat(run_out) if run_out else None,
        )

    # Subscriptions

    def snapshot(self, user_id: str, collection: Collection) -> Any:
        """Current contents of a collection as pushed to subscribers."""
        if collection == Collection.INVENTORY:
            return self.get_inventory(user_id)
        if collection == Collection.PURCHASE_HISTORY:
            return self.get_purchase_history(user_id, HISTORY_SNAPSHOT_LIMIT)
        if collection == Collection.USER_CONFIG:
            return self.get_user_config(user_id)
        return self.get_audit_log(user_id, AUDIT_SNAPSHOT_LIMIT)

    def subscribe(
        self,
        user_id: str,
        collection: Collection,
        listener: Listener,
        emit_initial: bool = True
    ) -> Callable[[], None]:
        """
        Register a listener for changes to one user collection.

        Args:
            user_id: Owner of the collection
            collection: Collection to watch
            listener: Called with the fresh snapshot after each commit
            emit_initial: Deliver the current snapshot immediately

        Returns:
            Function that removes the listener
        """
        key = (user_id, Collection(collection))
        with self._listeners_lock:
            self._listeners[key].append(listener)

        if emit_initial:
            listener(self.snapshot(user_id, key[1]))

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners.get(key, []):
                    self._listeners[key].remove(listener)

        return unsubscribe

    def notify(self, touched: Set[Tuple[str, Collection]]) -> None:
        """Push snapshots of the touched collections to their listeners."""
        for user_id, collection in touched:
            with self._listeners_lock:
                listeners = list(self._listeners.get((user_id, collection), []))
            if not listeners:
                continue

            data = self.snapshot(user_id, collection)
            for listener in listeners:
                try:
                    listener(data)
                except Exception as e:
                    self.logger.error(f"{collection.value} sync error for {user_id}: {e}", exc_info=True)

    def close(self) -> None:
        """Drop all listeners."""
        with self._listeners_lock:
            self._listeners.clear()


def create_database_manager(db_path: str = "data/smart_shopper.db") -> DatabaseManager:
    """
    Factory function to create an initialized DatabaseManager.

    Args:
        db_path: Path to database file

    Returns:
        Configured DatabaseManager instance
    """
    db_manager = DatabaseManager(db_path)
    db_manager.initialize_database()
    return db_manager
