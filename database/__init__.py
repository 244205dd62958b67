"""
Database package for the local backend.

This package provides the SQLite storage behind gateway.local.LocalBackend:
- connection: Connection creation and initialization (connect, init_db, ensure_schema)
- schema: Table creation and indexes
- seed: Initial seed data (admin account, demo fleet)
"""

from database.connection import connect, init_db, ensure_schema
from database.schema import drop_tables, create_tables, create_indexes, JSON_COLUMNS, BOOLEAN_COLUMNS
from database.seed import seed_database

__all__ = [
    # Connection
    'connect',
    'init_db',
    'ensure_schema',
    # Schema
    'drop_tables',
    'create_tables',
    'create_indexes',
    'JSON_COLUMNS',
    'BOOLEAN_COLUMNS',
    # Seed
    'seed_database',
]
