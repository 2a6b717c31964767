"""Connections to concrete target databases."""

from surql_migrate.adapters.surrealdb import SurrealConnection

__all__ = ["SurrealConnection"]
