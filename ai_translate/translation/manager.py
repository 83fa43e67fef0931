"""
Translation Manager Module

Main TranslationManager class that coordinates the document translation
workflow:
- Validate the request and fetch the source locale version
- Extract text segments from the localized fields
- Resolve what the cache already knows
- Translate the pending remainder chunk by chunk, within a per-call budget
- Write new translations through to the cache
- Merge, strip component identities and return the document with progress

Nothing but the cache survives between calls: every call recomputes the
segment list, so calling again after a partial result continues where the
previous call stopped.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from ai_translate.ai.exceptions import (
    CacheStoreError,
    DocumentNotFoundError,
    PreconditionError,
)
from ai_translate.config import (
    DEFAULT_MAX_CHARS_PER_CHUNK,
    DEFAULT_MAX_SEGMENTS_PER_CHUNK,
    get_effective_settings,
)
from ai_translate.logger import get_logger
from ai_translate.translation.cache import TranslationCache, build_translation_cache_hash
from ai_translate.translation.progress import TranslationProgress
from ai_translate.translation.sanitizer import strip_component_instance_ids
from ai_translate.translation.segments import (
    Segment,
    apply_segment_translations,
    build_populate,
    collect_translatable_segments,
    extract_localized_top_level_fields,
    extract_top_level_media_fields,
    is_plain_object,
    is_schema_localized,
)
from ai_translate.translation.utils import chunk_segments

logger = get_logger(__name__)


class TranslationManager:
    """
    Translates documents field by field, resumably.

    Features:
    - Bounded work per call (max_chunks) for incremental progress
    - Content-addressed cache shared by every call and every document
    - Cache failures degrade to "no caching" instead of failing the call
    - Progress callbacks and cooperative cancellation between chunks
    """

    def __init__(self, repository=None, cache: Optional[TranslationCache] = None, backend=None,
                 settings: Optional[Dict[str, Any]] = None):
        """
        Initialize translation manager.

        Args:
            repository: Schema registry and document source
                (resolve_schema, get_components, fetch_localized_document)
            cache: Translation cache; sqlite-backed by default
            backend: Object with name/model/endpoint/translate_batch;
                built from settings on first use by default
            settings: Effective settings; resolved from env/database by default
        """
        if repository is None:
            from ai_translate.core.repository import ContentRepository
            repository = ContentRepository()
        self.repository = repository
        self.cache = cache if cache is not None else TranslationCache()
        self.settings = settings if settings is not None else get_effective_settings()
        self._backend = backend

        translation_config = self.settings.get("translation") or {}
        self.max_segments_per_chunk = translation_config.get("max_segments_per_chunk", DEFAULT_MAX_SEGMENTS_PER_CHUNK)
        self.max_chars_per_chunk = translation_config.get("max_chars_per_chunk", DEFAULT_MAX_CHARS_PER_CHUNK)

    @property
    def backend(self):
        if self._backend is None:
            from ai_translate.ai.service import create_backend
            self._backend = create_backend(self.settings)
        return self._backend

    def _chunk(self, segments: List[Segment]) -> List[List[Segment]]:
        return chunk_segments(segments, self.max_segments_per_chunk, self.max_chars_per_chunk)

    def _load_source(self, uid: str, document_id: str, source_locale: str, target_locale: str):
        """Validate the request and return (schema, components, source document)."""
        if not uid or not document_id or not source_locale or not target_locale:
            raise PreconditionError(
                "Missing parameters: uid / documentId / sourceLocale / targetLocale are required",
                details={
                    "uid": bool(uid),
                    "document_id": bool(document_id),
                    "source_locale": bool(source_locale),
                    "target_locale": bool(target_locale),
                },
            )

        if source_locale == target_locale:
            raise PreconditionError(
                "sourceLocale and targetLocale must differ",
                details={"locale": source_locale},
            )

        schema = self.repository.resolve_schema(uid)
        if not schema:
            raise PreconditionError(f"Content type not found: {uid}", details={"uid": uid})

        if not is_schema_localized(schema):
            raise PreconditionError(f"Content type does not have i18n enabled: {uid}", details={"uid": uid})

        components = self.repository.get_components() or {}
        populate = build_populate(schema, components)
        source_document = self.repository.fetch_localized_document(uid, document_id, source_locale, populate)
        if not is_plain_object(source_document):
            raise DocumentNotFoundError(
                f"Source locale version not found: {uid}/{document_id} ({source_locale})",
                details={"uid": uid, "document_id": document_id, "locale": source_locale},
            )

        return schema, components, source_document

    def _cache_hashes(self, segments: List[Segment], source_locale: str, target_locale: str,
                      prompt: Optional[str]) -> Dict[str, str]:
        """segment id -> cache hash"""
        backend = self.backend
        return {
            segment.id: build_translation_cache_hash(
                provider=backend.name,
                model=backend.model,
                endpoint=backend.endpoint,
                source_locale=source_locale,
                target_locale=target_locale,
                prompt=prompt,
                text=segment.text,
            )
            for segment in segments
        }

    def _read_cache(self, hashes: List[str], progress: TranslationProgress) -> Dict[str, str]:
        try:
            return self.cache.get(hashes)
        except CacheStoreError as e:
            logger.warning(f"Translation cache unavailable, continuing without it: {e}")
            progress.cache_enabled = False
            return {}

    def _write_cache(self, entries: List[Dict[str, str]], progress: TranslationProgress) -> None:
        if not progress.cache_enabled or not entries:
            return
        try:
            progress.cache_writes += self.cache.set(entries)
        except CacheStoreError as e:
            logger.warning(f"Failed to write translations to cache, caching disabled for this call: {e}")
            progress.cache_enabled = False

    def _build_document(self, schema, components, source_document, localized_data,
                        segments, translations_by_id) -> Dict[str, Any]:
        merged = apply_segment_translations(localized_data, segments, translations_by_id)
        sanitized = strip_component_instance_ids(schema, components, merged)
        # Localized media already carries translated alternativeText/caption
        for key, value in extract_top_level_media_fields(schema, source_document).items():
            sanitized.setdefault(key, value)
        return sanitized

    def translate_document_progress(
        self,
        uid: str,
        document_id: str,
        source_locale: str,
        target_locale: str,
        prompt: Optional[str] = None,
        include_json: bool = False,
        max_chunks: Optional[int] = None,
        progress_callback: Optional[Callable[[TranslationProgress], Any]] = None,
        cancel_check: Optional[Callable[[], bool]] = None,
    ) -> Dict[str, Any]:
        """
        Translate up to max_chunks pending chunks of a document.

        Args:
            uid: Content type uid
            document_id: Document identifier
            source_locale: Locale to translate from
            target_locale: Locale to translate to
            prompt: Optional additional instructions for the model
            include_json: Also translate strings inside json fields
            max_chunks: Chunk budget for this call; None or <= 0 means unbounded
            progress_callback: Called after every chunk; a truthy return stops early
            cancel_check: Consulted before every chunk; True stops early

        Returns:
            {"document", "done", "progress": {...}, "cache": {...}}
        """
        start_time = time.time()
        schema, components, source_document = self._load_source(uid, document_id, source_locale, target_locale)

        progress = TranslationProgress(phase="computing")
        localized_data = extract_localized_top_level_fields(schema, source_document)
        segments = collect_translatable_segments(schema, components, localized_data, include_json=include_json)
        progress.total = len(segments)

        if not segments:
            progress.phase = "done"
            logger.info(f"No translatable segments in {uid}/{document_id} ({source_locale})")
            return self._result(
                self._build_document(schema, components, source_document, localized_data, [], {}),
                progress,
            )

        progress.phase = "cache-resolving"
        hashes_by_id = self._cache_hashes(segments, source_locale, target_locale, prompt)
        cached = self._read_cache(list(hashes_by_id.values()), progress)

        translations_by_id: Dict[str, str] = {}
        for segment in segments:
            hit = cached.get(hashes_by_id[segment.id])
            if hit is not None:
                translations_by_id[segment.id] = hit
        progress.cache_hits = len(translations_by_id)

        pending = [segment for segment in segments if segment.id not in translations_by_id]
        chunks = self._chunk(pending)
        budget = len(chunks) if not max_chunks or max_chunks <= 0 else min(max_chunks, len(chunks))
        progress.planned_chunks = budget
        progress.phase = "chunk-processing"
        logger.info(
            f"Translating {uid}/{document_id} {source_locale}->{target_locale}: "
            f"{len(segments)} segments, {progress.cache_hits} cached, {len(pending)} pending "
            f"in {len(chunks)} chunks (processing {budget})"
        )

        for chunk_idx, chunk in enumerate(chunks[:budget]):
            if cancel_check and cancel_check():
                logger.info(f"Cancellation requested before chunk {chunk_idx + 1}/{budget}")
                break

            logger.debug(f"Chunk {chunk_idx + 1}/{budget}: translating {len(chunk)} segments")
            chunk_ids = {segment.id for segment in chunk}
            result = self.backend.translate_batch(chunk, target_locale, prompt)

            new_entries = []
            for segment_id, text in result.items():
                if segment_id not in chunk_ids:
                    continue
                translations_by_id[segment_id] = text
                new_entries.append({"hash": hashes_by_id[segment_id], "translation": text})

            missing = len(chunk_ids) - len(new_entries)
            if missing:
                logger.warning(f"Chunk {chunk_idx + 1}/{budget}: backend skipped {missing} segments")

            self._write_cache(new_entries, progress)

            progress.current_chunk = chunk_idx + 1
            self._update_counts(progress, segments, translations_by_id)
            if progress_callback and progress_callback(progress):
                logger.info(f"Progress callback requested stop after chunk {chunk_idx + 1}/{budget}")
                break

        self._update_counts(progress, segments, translations_by_id)
        progress.phase = "done" if progress.done else "partial"

        document = self._build_document(
            schema, components, source_document, localized_data, segments, translations_by_id
        )
        logger.info(
            f"Translation call finished in {time.time() - start_time:.1f}s: "
            f"{progress.translated}/{progress.total} translated, {progress.remaining_chunks} chunks remaining"
        )
        return self._result(document, progress)

    def _update_counts(self, progress: TranslationProgress, segments: List[Segment],
                       translations_by_id: Dict[str, str]) -> None:
        remaining = [segment for segment in segments if segment.id not in translations_by_id]
        progress.translated = len(segments) - len(remaining)
        progress.remaining = len(remaining)
        progress.remaining_chunks = len(self._chunk(remaining))

    def _result(self, document: Dict[str, Any], progress: TranslationProgress) -> Dict[str, Any]:
        return {
            "document": document,
            "done": progress.done,
            "progress": progress.progress_dict(),
            "cache": progress.cache_dict(),
        }

    def translate_document(
        self,
        uid: str,
        document_id: str,
        source_locale: str,
        target_locale: str,
        prompt: Optional[str] = None,
        include_json: bool = False,
    ) -> Dict[str, Any]:
        """Translate the whole document in one call and return it."""
        result = self.translate_document_progress(
            uid,
            document_id,
            source_locale,
            target_locale,
            prompt=prompt,
            include_json=include_json,
            max_chunks=None,
        )
        return result["document"]

    def clear_translation_cache(self, include_previous_versions: bool = True) -> Dict[str, int]:
        return self.cache.clear(include_previous_versions=include_previous_versions)
