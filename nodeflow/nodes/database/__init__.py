"""Database nodes - PostgreSQL and MongoDB queries."""

from nodeflow.nodes.database.mongodb import MongoQueryNode
from nodeflow.nodes.database.postgres import PostgresQueryNode

__all__ = [
    "MongoQueryNode",
    "PostgresQueryNode",
]
