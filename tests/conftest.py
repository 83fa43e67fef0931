"""Shared test fixtures for ai-translate tests."""

from __future__ import annotations

import copy
import threading
from typing import Any, Callable, Dict, List, Optional

import pytest

from ai_translate.core import database
from ai_translate.core.schema import initialize_database

ENV_VARS = (
    "AI_TRANSLATE_PROVIDER",
    "AI_TRANSLATE_API_KEY",
    "AI_TRANSLATE_API_URL",
    "AI_TRANSLATE_MODEL",
    "AI_TRANSLATE_REPLICATE_API_TOKEN",
    "AI_TRANSLATE_REPLICATE_MODEL",
    "AI_TRANSLATE_LOG_MODE",
)


def localized(attribute: Dict[str, Any]) -> Dict[str, Any]:
    """Mark an attribute (or content type schema) as localized."""
    marked = dict(attribute)
    marked["pluginOptions"] = {"i18n": {"localized": True}}
    return marked


class MemoryStore:
    """In-memory key/value store with the PluginStore interface."""

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.set_calls: List[str] = []
        self.update_calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            return copy.deepcopy(self.data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.set_calls.append(key)
            self.data[key] = copy.deepcopy(value)

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        with self._lock:
            self.update_calls.append(key)
            value = fn(copy.deepcopy(self.data.get(key)))
            self.data[key] = copy.deepcopy(value)
            return value


class BrokenStore:
    """Store whose every operation fails."""

    def get(self, key: str) -> Any:
        raise RuntimeError("store offline")

    def set(self, key: str, value: Any) -> None:
        raise RuntimeError("store offline")

    def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        raise RuntimeError("store offline")


class FakeBackend:
    """Backend that tags every text with the target locale."""

    name = "fake"
    model = "fake-model"
    endpoint = ""

    def __init__(self, skip_ids: Optional[set] = None, error: Optional[Exception] = None):
        self.skip_ids = skip_ids or set()
        self.error = error
        self.calls: List[List[str]] = []

    def translate_batch(self, batch, target_locale, custom_prompt=None):
        self.calls.append([segment.id for segment in batch])
        if self.error is not None:
            raise self.error
        return {
            segment.id: f"[{target_locale}] {segment.text}"
            for segment in batch
            if segment.id not in self.skip_ids
        }


class FakeRepository:
    """Schema registry and document source backed by dicts."""

    def __init__(self, schemas=None, components=None, documents=None):
        self.schemas: Dict[str, Any] = schemas or {}
        self.components: Dict[str, Any] = components or {}
        self.documents: Dict[tuple, Any] = documents or {}
        self.fetches: List[tuple] = []

    def resolve_schema(self, uid):
        return self.schemas.get(uid)

    def get_components(self):
        return self.components

    def fetch_localized_document(self, uid, document_id, locale, populate=None):
        self.fetches.append((uid, document_id, locale, populate))
        document = self.documents.get((uid, document_id, locale))
        return copy.deepcopy(document)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep developer environment variables out of the tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tmp_db(tmp_path, monkeypatch):
    """Fresh sqlite database for one test."""
    monkeypatch.setattr(database, "DB_FILE", tmp_path / "test.db")
    initialize_database()
    return tmp_path / "test.db"


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def article_schema():
    """Article content type with a seo component, a repeatable feature list and json settings."""
    return localized({
        "attributes": {
            "title": localized({"type": "string"}),
            "slug": {"type": "uid"},
            "body": localized({"type": "richtext"}),
            "cover": {"type": "media"},
            "seo": localized({"type": "component", "component": "shared.seo", "repeatable": False}),
            "features": localized({"type": "component", "component": "shared.feature", "repeatable": True}),
            "settings": localized({"type": "json"}),
            "author": {"type": "relation", "relation": "manyToOne", "target": "api::author.author"},
        }
    })


@pytest.fixture
def components():
    return {
        "shared.seo": {
            "attributes": {
                "metaTitle": {"type": "string"},
                "metaDescription": {"type": "text"},
                "shareImage": {"type": "media"},
            }
        },
        "shared.feature": {
            "attributes": {
                "title": {"type": "string"},
                "content": {"type": "text"},
                "icon": {"type": "media"},
            }
        },
    }
