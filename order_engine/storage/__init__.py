"""Order persistence backends."""

from .order_store import (
    InMemoryOrderStore,
    IOrderStore,
    SqliteOrderStore,
    create_order_store,
)

__all__ = [
    "InMemoryOrderStore",
    "IOrderStore",
    "SqliteOrderStore",
    "create_order_store",
]
