"""Warehouse query client and result cursor."""
from .client import (
    REFUNDS_QUERY,
    SUBSCRIPTIONS_QUERY,
    WarehouseClient,
    get_warehouse_client,
)
from .result_set import ResultSet

__all__ = [
    "REFUNDS_QUERY",
    "SUBSCRIPTIONS_QUERY",
    "ResultSet",
    "WarehouseClient",
    "get_warehouse_client",
]
