"""
Database Schema Management Module

This module handles database initialization and schema versioning.
For CRUD operations, see core/database.py
"""

import sqlite3

# Import database module to use DB_FILE and get_connection dynamically
# This ensures monkeypatching in tests works correctly
import ai_translate.core.database as db

DB_VERSION = 1  # Increment when schema changes


def get_connection():
    """Get a database connection using the database module's DB_FILE."""
    return db.get_connection()


def get_db_version() -> int:
    """Get current database version."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT version FROM db_version LIMIT 1")
        row = cursor.fetchone()
        return row[0] if row else 0
    except sqlite3.OperationalError:
        return 0
    finally:
        conn.close()


def set_db_version(version: int):
    """Set database version."""
    conn = get_connection()
    try:
        cursor = conn.cursor()
        cursor.execute("CREATE TABLE IF NOT EXISTS db_version (version INTEGER)")
        cursor.execute("DELETE FROM db_version")
        cursor.execute("INSERT INTO db_version (version) VALUES (?)", (version,))
        conn.commit()
    finally:
        conn.close()


def initialize_database():
    """Initializes the database and creates any missing tables."""
    from ai_translate.logger import get_logger
    logger = get_logger(__name__)

    db.DB_FILE.parent.mkdir(parents=True, exist_ok=True)

    conn = get_connection()
    try:
        cursor = conn.cursor()

        # Stored settings
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS app_config (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)

        # Generic key/value store (translation cache buckets)
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS plugin_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)

        # Schema registry
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS content_types (
            uid TEXT PRIMARY KEY,
            schema TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS components (
            uid TEXT PRIMARY KEY,
            schema TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """)

        # Content repository
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS documents (
            uid TEXT NOT NULL,
            document_id TEXT NOT NULL,
            locale TEXT NOT NULL,
            data TEXT NOT NULL,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (uid, document_id, locale)
        )
        """)

        conn.commit()
    finally:
        conn.close()

    current_version = get_db_version()
    if current_version != DB_VERSION:
        set_db_version(DB_VERSION)
        logger.info(f"Database schema set to version {DB_VERSION} (was {current_version})")
