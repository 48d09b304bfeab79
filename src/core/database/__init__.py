"""Database connection module for EduMaster."""

from src.core.database.async_cassandra import (
    CassandraDatabase,
    init_async_cassandra,
    shutdown_async_cassandra,
)


__all__ = [
    "CassandraDatabase",
    "init_async_cassandra",
    "shutdown_async_cassandra",
]
