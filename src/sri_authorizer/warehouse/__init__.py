"""
PostgreSQL implementations of the voucher table, change feed, work queue and
notification topic.
"""

from .change_feed import PostgresChangeFeed
from .connection import DatabaseConnectionPool
from .schema_mgmt import SchemaManager
from .topic import PostgresTopic
from .voucher_store import PostgresVoucherStore
from .work_queue import PostgresWorkQueue

__all__ = [
    "DatabaseConnectionPool",
    "PostgresChangeFeed",
    "PostgresTopic",
    "PostgresVoucherStore",
    "PostgresWorkQueue",
    "SchemaManager",
]
