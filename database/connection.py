"""
Database connection management.
Handles connection creation and initialization for the local backend.
"""

import logging
import os
import sqlite3

logger = logging.getLogger(__name__)


def connect(db_path: str) -> sqlite3.Connection:
    """
    Open a SQLite connection with row factory.

    The connection is shared by every thread of the process; callers
    serialize access (see gateway.local.LocalBackend).

    Args:
        db_path: File path or ':memory:'

    Returns:
        sqlite3.Connection: Database connection object
    """
    if db_path != ':memory:':
        directory = os.path.dirname(db_path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)

    db = sqlite3.connect(db_path, check_same_thread=False)
    db.row_factory = sqlite3.Row
    # Enable foreign key constraints
    db.execute('PRAGMA foreign_keys = ON')
    if db_path != ':memory:':
        # Enable WAL mode for better concurrency
        db.execute('PRAGMA journal_mode = WAL')
    return db


def init_db(db: sqlite3.Connection, seed: bool = True) -> None:
    """
    Initialize database: drop existing tables, create new schema, insert seed data.
    WARNING: This will delete all existing data!

    Args:
        db: Open connection
        seed: Insert the demo fleet and admin account
    """
    from database.schema import drop_tables, create_tables, create_indexes
    from database.seed import seed_database

    # Drop existing tables (in reverse order of dependencies)
    drop_tables(db)

    # Create all tables
    create_tables(db)

    # Create indexes
    create_indexes(db)

    # Insert seed data
    if seed:
        seed_database(db)

    db.commit()
    logger.info('Database initialized successfully')


def ensure_schema(db: sqlite3.Connection) -> None:
    """Create missing tables and indexes without touching existing data."""
    from database.schema import create_tables, create_indexes

    create_tables(db)
    create_indexes(db)
    db.commit()
