"""
Core module - Persistence and host stand-ins

This module provides:
- database: sqlite CRUD for settings, the plugin store, schemas and documents
- schema: Database initialization and versioning
- repository: ContentRepository (schema registry + document source)
"""

from ai_translate.core.database import (
    DB_FILE,
    get_connection,
    # App config operations
    get_app_config,
    set_app_config,
    # Plugin store operations
    get_store_value,
    set_store_value,
    update_store_value,
    PluginStore,
    # Schema registry operations
    upsert_content_type,
    get_content_type,
    upsert_component,
    get_all_components,
    # Document operations
    upsert_document,
    get_document,
    get_document_locales,
)

from ai_translate.core.schema import (
    DB_VERSION,
    get_db_version,
    set_db_version,
    initialize_database,
)

from ai_translate.core.repository import ContentRepository
