"""Database domain — relational store adapter contract."""

from agentruntime.database.adapter import DatabaseAdapter
from agentruntime.database.adapter import InMemoryDatabaseAdapter

__all__ = ["DatabaseAdapter", "InMemoryDatabaseAdapter"]
