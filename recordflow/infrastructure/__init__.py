"""
Infrastructure package for recordflow.

Centralizes database connectivity concerns (SQLite connections, PostgreSQL
async pools, store construction). Keep this layer focused on I/O and resource
management, decoupled from generator/coordinator/sync logic.
"""

from recordflow.infrastructure.db_factory import (
    build_dsn,
    connect_sqlite,
    create_store,
    open_async_pool,
)

__all__ = [
    "build_dsn",
    "connect_sqlite",
    "create_store",
    "open_async_pool",
]
