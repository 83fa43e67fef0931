"""
AI Translate Exceptions

This module contains the exception hierarchy shared by the backends, the
orchestrator and the web layer. Separated to avoid circular imports between
service.py and providers.py.
"""


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    code_default = "translation_error"
    retryable = False

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code or self.code_default
        self.details = details or {}


class PreconditionError(TranslationError):
    """Invalid request: missing identifiers, equal locales, unknown type, i18n disabled."""

    code_default = "precondition_failed"


class DocumentNotFoundError(TranslationError):
    """The source document (or its source locale version) does not exist."""

    code_default = "not_found"


class BackendError(TranslationError):
    """Base class for failures reported by an AI backend."""

    code_default = "backend_error"

    def __init__(self, message: str, code: str = None, details: dict = None, status: int = None):
        super().__init__(message, code=code, details=details)
        self.status = status


class BackendAuthError(BackendError):
    """The backend rejected the configured credentials."""

    code_default = "backend_auth"


class BackendUnsupportedFeatureError(BackendError):
    """The backend refused a request option (e.g. a strict JSON response format)."""

    code_default = "backend_unsupported_feature"


class BackendRequestError(BackendError):
    """Transport failure or server-side error; safe to retry."""

    code_default = "backend_request_failed"
    retryable = True


class BackendTimeoutError(BackendRequestError):
    """The backend did not answer within the configured timeout."""

    code_default = "backend_timeout"


class OutputMalformedError(TranslationError):
    """The backend answered, but not with the expected JSON envelope."""

    code_default = "output_malformed"


class CacheStoreError(TranslationError):
    """Reading or writing a translation cache bucket failed."""

    code_default = "cache_store_failed"
