"""
Database CRUD Operations Module

This module handles all sqlite CRUD operations for:
- App Config (stored settings)
- Plugin Store (key/value JSON documents, used for cache buckets)
- Content Types and Components (schema registry stand-in)
- Documents (content repository stand-in)

For schema management, see core/schema.py
"""

import json
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

DB_FILE = Path(os.environ.get("AI_TRANSLATE_DB") or Path(__file__).parent.parent.parent / "ai_translate.db")

# sqlite waits this long for a competing writer before raising "database is locked"
BUSY_TIMEOUT_SECONDS = 30.0


def get_connection():
    """Get a database connection."""
    return sqlite3.connect(DB_FILE, timeout=BUSY_TIMEOUT_SECONDS)


@contextmanager
def _closing_connection():
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


# ============================================================
# App Config CRUD Operations
# ============================================================

def get_app_config(key: str) -> Optional[str]:
    """Get a configuration value by key."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM app_config WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_app_config(key: str, value: str):
    """Set a configuration value."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO app_config (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, datetime.now()))
        conn.commit()


# ============================================================
# Plugin Store Operations
# ============================================================

def get_store_value(key: str) -> Optional[str]:
    """Get the raw JSON text stored under key, or None if the key was never written."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT value FROM plugin_store WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row else None


def set_store_value(key: str, value: str):
    """Write raw JSON text under key."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO plugin_store (key, value, updated_at)
            VALUES (?, ?, ?)
        """, (key, value, datetime.now()))
        conn.commit()


def update_store_value(key: str, updater: Callable[[Optional[str]], str]) -> str:
    """
    Atomically read, transform and write the value stored under key.

    The read and the write share one IMMEDIATE transaction, so two writers
    updating the same key never interleave.
    """
    conn = get_connection()
    try:
        conn.isolation_level = None
        cursor = conn.cursor()
        cursor.execute("BEGIN IMMEDIATE")
        try:
            cursor.execute("SELECT value FROM plugin_store WHERE key = ?", (key,))
            row = cursor.fetchone()
            new_value = updater(row[0] if row else None)
            cursor.execute("""
                INSERT OR REPLACE INTO plugin_store (key, value, updated_at)
                VALUES (?, ?, ?)
            """, (key, new_value, datetime.now()))
            cursor.execute("COMMIT")
        except BaseException:
            cursor.execute("ROLLBACK")
            raise
        return new_value
    finally:
        conn.close()


class PluginStore:
    """
    JSON key/value store on top of the plugin_store table.

    Values are decoded on read and encoded on write. Writers on the same key
    are serialized in-process by a per-key lock and across processes by the
    sqlite transaction in update_store_value.
    """

    def __init__(self):
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def get(self, key: str) -> Any:
        raw = get_store_value(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock_for(key):
            set_store_value(key, json.dumps(value, ensure_ascii=False))

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        def updater(raw: Optional[str]) -> str:
            current = None
            if raw is not None:
                try:
                    current = json.loads(raw)
                except json.JSONDecodeError:
                    current = None
            return json.dumps(fn(current), ensure_ascii=False)

        with self._lock_for(key):
            return json.loads(update_store_value(key, updater))


# ============================================================
# Content Type / Component CRUD Operations
# ============================================================

def upsert_content_type(uid: str, schema: Dict[str, Any]):
    """Create or replace a content type schema."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO content_types (uid, schema, updated_at)
            VALUES (?, ?, ?)
        """, (uid, json.dumps(schema, ensure_ascii=False), datetime.now()))
        conn.commit()


def get_content_type(uid: str) -> Optional[Dict[str, Any]]:
    """Get a content type schema by uid."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT schema FROM content_types WHERE uid = ?", (uid,))
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None


def upsert_component(uid: str, schema: Dict[str, Any]):
    """Create or replace a component schema."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO components (uid, schema, updated_at)
            VALUES (?, ?, ?)
        """, (uid, json.dumps(schema, ensure_ascii=False), datetime.now()))
        conn.commit()


def get_all_components() -> Dict[str, Dict[str, Any]]:
    """Get every component schema keyed by uid."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("SELECT uid, schema FROM components")
        return {row[0]: json.loads(row[1]) for row in cursor.fetchall()}


# ============================================================
# Document CRUD Operations
# ============================================================

def upsert_document(uid: str, document_id: str, locale: str, data: Dict[str, Any]):
    """Create or replace one locale version of a document."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            INSERT OR REPLACE INTO documents (uid, document_id, locale, data, updated_at)
            VALUES (?, ?, ?, ?, ?)
        """, (uid, document_id, locale, json.dumps(data, ensure_ascii=False), datetime.now()))
        conn.commit()


def get_document(uid: str, document_id: str, locale: str) -> Optional[Dict[str, Any]]:
    """Get one locale version of a document."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT data FROM documents
            WHERE uid = ? AND document_id = ? AND locale = ?
        """, (uid, document_id, locale))
        row = cursor.fetchone()
        return json.loads(row[0]) if row else None


def get_document_locales(uid: str, document_id: str) -> List[str]:
    """List the locales a document exists in."""
    with _closing_connection() as conn:
        cursor = conn.cursor()
        cursor.execute("""
            SELECT locale FROM documents
            WHERE uid = ? AND document_id = ?
            ORDER BY locale
        """, (uid, document_id))
        return [row[0] for row in cursor.fetchall()]
