"""
Persistence package for the Order Service.

Users and orders live behind the `OrderRepository` contract: PostgreSQL via
asyncpg in deployments, an in-process store for local runs and tests.
"""

from .base import OrderRepository
from .memory import InMemoryPersistence
from .postgres import PostgreSQLPersistence

__all__ = ["OrderRepository", "InMemoryPersistence", "PostgreSQLPersistence"]
