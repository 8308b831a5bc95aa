"""
Durable order storage for the execution engine.

Provides the order store contract consumed by the orchestrator together with
SQLite and in-memory backends. Stores hold the authoritative copy of each
order; the orchestrator writes its working copy back after every transition.
"""

import copy
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from order_engine.core.logger import get_module_logger
from order_engine.orders.models import Order

ORDER_COLUMNS = (
    "id",
    "type",
    "token_in",
    "token_out",
    "amount_in",
    "amount_out",
    "target_price",
    "launch_time",
    "slippage",
    "status",
    "created_at",
    "updated_at",
    "user_id",
    "dex_provider",
    "executed_price",
    "tx_hash",
    "amount_received",
    "error_message",
)


class IOrderStore(ABC):
    """Interface for order storage backends."""

    @abstractmethod
    def save(self, order: Order) -> None:
        """Insert or update an order by id."""

    @abstractmethod
    def get(self, order_id: str) -> Optional[Order]:
        """Return the stored order or None when the id is unknown."""

    @abstractmethod
    def recent(self, limit: int = 50) -> List[Order]:
        """Return up to ``limit`` orders, newest ``created_at`` first."""

    @abstractmethod
    def close(self) -> None:
        """Release storage resources."""


class SqliteOrderStore(IOrderStore):
    """SQLite-based order storage implementation."""

    def __init__(self, db_path: str) -> None:
        """
        Initialize SQLite storage.

        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._lock = threading.Lock()
        self._logger = get_module_logger("order_store")

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        with sqlite3.connect(self._db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    token_in TEXT NOT NULL,
                    token_out TEXT NOT NULL,
                    amount_in REAL NOT NULL,
                    amount_out REAL,
                    target_price REAL,
                    launch_time TEXT,
                    slippage REAL NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    user_id TEXT,
                    dex_provider TEXT,
                    executed_price REAL,
                    tx_hash TEXT,
                    amount_received REAL,
                    error_message TEXT
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_orders_created_at ON orders(created_at)"
            )

    def save(self, order: Order) -> None:
        """Upsert the order row."""
        row = order.to_dict()
        placeholders = ", ".join("?" for _ in ORDER_COLUMNS)

        with self._lock:
            try:
                with sqlite3.connect(self._db_path) as conn:
                    conn.execute(
                        f"INSERT OR REPLACE INTO orders ({', '.join(ORDER_COLUMNS)}) "
                        f"VALUES ({placeholders})",
                        tuple(row[column] for column in ORDER_COLUMNS),
                    )
            except sqlite3.Error as e:
                self._logger.error(f"Failed to save order {order.id}: {e}")
                raise

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            try:
                with sqlite3.connect(self._db_path) as conn:
                    conn.row_factory = sqlite3.Row
                    cursor = conn.execute(
                        "SELECT * FROM orders WHERE id = ?", (order_id,)
                    )
                    row = cursor.fetchone()
            except sqlite3.Error as e:
                self._logger.error(f"Failed to load order {order_id}: {e}")
                raise

        return Order.from_dict(dict(row)) if row else None

    def recent(self, limit: int = 50) -> List[Order]:
        with self._lock:
            try:
                with sqlite3.connect(self._db_path) as conn:
                    conn.row_factory = sqlite3.Row
                    cursor = conn.execute(
                        "SELECT * FROM orders ORDER BY created_at DESC LIMIT ?",
                        (limit,),
                    )
                    rows = cursor.fetchall()
            except sqlite3.Error as e:
                self._logger.error(f"Failed to load recent orders: {e}")
                raise

        return [Order.from_dict(dict(row)) for row in rows]

    def close(self) -> None:
        """
        Close database connection (no persistent connection in this implementation).
        """


class InMemoryOrderStore(IOrderStore):
    """In-memory order storage for testing or temporary use."""

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}
        self._lock = threading.Lock()

    def save(self, order: Order) -> None:
        with self._lock:
            self._orders[order.id] = copy.deepcopy(order)

    def get(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    def recent(self, limit: int = 50) -> List[Order]:
        with self._lock:
            orders = sorted(
                self._orders.values(), key=lambda o: o.created_at, reverse=True
            )
            return [copy.deepcopy(order) for order in orders[:limit]]

    def close(self) -> None:
        with self._lock:
            self._orders.clear()


def create_order_store(backend: str = "sqlite", db_path: str = "orders.db") -> IOrderStore:
    """
    Factory function to create an order store.

    Args:
        backend: 'sqlite' or 'memory'
        db_path: SQLite database path

    Returns:
        IOrderStore: Configured order store

    Raises:
        ValueError: If backend is not supported
    """
    if backend == "sqlite":
        return SqliteOrderStore(db_path)
    if backend == "memory":
        return InMemoryOrderStore()
    raise ValueError(f"Unsupported storage backend: {backend}")
