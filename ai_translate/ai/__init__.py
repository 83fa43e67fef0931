"""
AI Module

This module provides the AI translation backends and related utilities.
"""

from ai_translate.ai.exceptions import (
    TranslationError,
    PreconditionError,
    DocumentNotFoundError,
    BackendError,
    BackendAuthError,
    BackendUnsupportedFeatureError,
    BackendRequestError,
    BackendTimeoutError,
    OutputMalformedError,
    CacheStoreError,
)
from ai_translate.ai.service import (
    BACKENDS,
    OpenAIBackend,
    ReplicateBackend,
    create_backend,
    validate_ai_config,
)
