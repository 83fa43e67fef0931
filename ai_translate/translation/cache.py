"""
Content-addressable translation cache.

Translations are keyed by a SHA-256 hash of everything that determines the
output (provider, model, endpoint, locale pair, custom prompt, source text)
and stored in 256 buckets chosen by the first two hex characters of the hash.
Each bucket is one store entry `translation-cache:v<version>:<bucket>` holding
a flat {hash: translated text} object, so every read or write touches a
bounded amount of data.

Bumping CACHE_VERSION invalidates everything without deleting old buckets;
`clear(include_previous_versions=True)` empties those too.
"""

import hashlib
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Optional

from ai_translate.ai.exceptions import CacheStoreError
from ai_translate.logger import get_logger

logger = get_logger(__name__)

CACHE_VERSION = 2
BUCKET_PREFIX_LENGTH = 2
MAX_WORKERS = 8


def get_cache_bucket_key(hash_value: str) -> str:
    return hash_value[:BUCKET_PREFIX_LENGTH]


def get_cache_store_key(bucket: str, version: int = CACHE_VERSION) -> str:
    return f"translation-cache:v{version}:{bucket}"


def get_all_bucket_keys() -> List[str]:
    return [format(i, "02x") for i in range(256)]


def is_valid_hash(value: Any) -> bool:
    return isinstance(value, str) and len(value) >= BUCKET_PREFIX_LENGTH


def normalize_cache_bucket_value(raw: Any) -> Dict[str, str]:
    """Drop anything that is not a non-empty string entry."""
    if not isinstance(raw, dict):
        return {}
    return {
        key: value
        for key, value in raw.items()
        if isinstance(key, str) and isinstance(value, str) and value
    }


def build_translation_cache_hash(
    provider: str,
    source_locale: str,
    target_locale: str,
    text: str,
    model: Optional[str] = None,
    endpoint: Optional[str] = None,
    prompt: Optional[str] = None,
) -> str:
    """
    Deterministic cache key for one translation.

    model, endpoint and prompt are trimmed and None is treated as "", so
    cosmetic differences in settings do not miss the cache.
    """
    payload = json.dumps(
        {
            "v": CACHE_VERSION,
            "provider": provider or "",
            "model": (model or "").strip(),
            "endpoint": (endpoint or "").strip(),
            "sourceLocale": source_locale,
            "targetLocale": target_locale,
            "prompt": (prompt or "").strip(),
            "text": text,
        },
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TranslationCache:
    """
    Bucketed translation cache on top of a key/value store.

    The store must provide get(key), set(key, value) and update(key, fn),
    where update performs an atomic read-modify-write of a single key.
    """

    def __init__(self, store=None, version: int = CACHE_VERSION, max_workers: int = MAX_WORKERS):
        if store is None:
            from ai_translate.core.database import PluginStore
            store = PluginStore()
        self.store = store
        self.version = version
        self.max_workers = max_workers

    def _map(self, fn, items: List[Any]) -> List[Any]:
        if len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            return list(executor.map(fn, items))

    def _read_bucket(self, bucket: str, version: Optional[int] = None) -> Dict[str, str]:
        key = get_cache_store_key(bucket, self.version if version is None else version)
        try:
            return normalize_cache_bucket_value(self.store.get(key))
        except Exception as e:
            raise CacheStoreError(f"Failed to read cache bucket {key}: {e}") from e

    def get(self, hashes: Iterable[str]) -> Dict[str, str]:
        """
        Look up many hashes at once.

        Returns:
            {hash: translation} for the hashes found; unknown hashes are absent
        """
        hashes_by_bucket: Dict[str, List[str]] = {}
        for hash_value in dict.fromkeys(hashes):
            if not is_valid_hash(hash_value):
                continue
            hashes_by_bucket.setdefault(get_cache_bucket_key(hash_value), []).append(hash_value)

        if not hashes_by_bucket:
            return {}

        buckets = list(hashes_by_bucket.items())
        bucket_values = self._map(lambda item: self._read_bucket(item[0]), buckets)

        result: Dict[str, str] = {}
        for (bucket, bucket_hashes), bucket_value in zip(buckets, bucket_values):
            for hash_value in bucket_hashes:
                cached = bucket_value.get(hash_value)
                if cached:
                    result[hash_value] = cached

        logger.debug(f"Cache lookup: {len(result)}/{sum(len(h) for _, h in buckets)} hits across {len(buckets)} buckets")
        return result

    def set(self, entries: Iterable[Dict[str, Any]]) -> int:
        """
        Write {"hash", "translation"} entries, merging into existing buckets.

        Returns:
            Number of entries written
        """
        entries_by_bucket: Dict[str, Dict[str, str]] = {}
        for entry in entries:
            hash_value = entry.get("hash")
            translation = entry.get("translation")
            if not is_valid_hash(hash_value) or not isinstance(translation, str):
                continue
            entries_by_bucket.setdefault(get_cache_bucket_key(hash_value), {})[hash_value] = translation

        if not entries_by_bucket:
            return 0

        def write_bucket(item):
            bucket, bucket_entries = item
            key = get_cache_store_key(bucket, self.version)

            def merge(current: Any) -> Dict[str, str]:
                merged = normalize_cache_bucket_value(current)
                merged.update(bucket_entries)
                return merged

            try:
                self.store.update(key, merge)
            except Exception as e:
                raise CacheStoreError(f"Failed to write cache bucket {key}: {e}") from e
            return len(bucket_entries)

        written = sum(self._map(write_bucket, list(entries_by_bucket.items())))
        logger.debug(f"Cache write: {written} entries across {len(entries_by_bucket)} buckets")
        return written

    def clear(self, include_previous_versions: bool = True) -> Dict[str, int]:
        """
        Empty every bucket that currently holds data.

        Buckets that were never written are left absent.

        Returns:
            {"cleared_buckets": n, "cleared_versions": m}
        """
        versions = list(range(1, self.version + 1)) if include_previous_versions else [self.version]

        def clear_bucket(item) -> int:
            version, bucket = item
            if not self._read_bucket(bucket, version):
                return 0
            key = get_cache_store_key(bucket, version)
            try:
                self.store.set(key, {})
            except Exception as e:
                raise CacheStoreError(f"Failed to clear cache bucket {key}: {e}") from e
            return 1

        items = [(version, bucket) for version in versions for bucket in get_all_bucket_keys()]
        cleared_buckets = sum(self._map(clear_bucket, items))

        logger.info(f"Translation cache cleared: {cleared_buckets} buckets across {len(versions)} versions")
        return {
            "cleared_buckets": cleared_buckets,
            "cleared_versions": len(versions),
        }
