"""
Translation module - Core translation functionality

This module provides:
- TranslationManager: Resumable document translation coordinator
- TranslationProgress: Progress tracking dataclass
- Segment walking/merging, component identity sanitizing
- The content-addressed translation cache and batch chunking
"""

from ai_translate.translation.progress import TranslationProgress
from ai_translate.translation.segments import (
    Segment,
    collect_translatable_segments,
    apply_segment_translations,
    build_populate,
    extract_localized_top_level_fields,
    extract_top_level_media_fields,
)
from ai_translate.translation.sanitizer import strip_component_instance_ids
from ai_translate.translation.cache import (
    CACHE_VERSION,
    TranslationCache,
    build_translation_cache_hash,
)
from ai_translate.translation.utils import (
    chunk_segments,
    parse_json_from_model_output,
    extract_translations_by_id,
)
from ai_translate.translation.manager import TranslationManager
