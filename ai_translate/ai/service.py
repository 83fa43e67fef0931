"""
AI Translation Service Module

This module provides the batch translation backends:
- Prompt construction
- OpenAIBackend (chat completions) and ReplicateBackend (model invocation)
- A small registry/factory keyed by the configured provider name
- Configuration validation
- Error categorization and retry logic

For the HTTP calls themselves, see ai/providers.py
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ai_translate.config import DEFAULT_OPENAI_MODEL, get_effective_settings
from ai_translate.logger import get_logger
from ai_translate.ai import providers
from ai_translate.ai.exceptions import (
    BackendRequestError,
    BackendUnsupportedFeatureError,
    OutputMalformedError,
    PreconditionError,
    TranslationError,
)

logger = get_logger(__name__)


def build_system_prompt(target_locale: str) -> str:
    return "\n".join([
        "You are a professional translator.",
        f"Target language (locale): {target_locale}",
        "Requirements:",
        "- Translate only the text of segments[].text; never change any id.",
        "- Preserve Markdown/HTML structure, URLs, e-mail addresses, code blocks and "
        "placeholders (such as {{variable}}, {0}, %s).",
        "- Do not output explanations or Markdown code fences; return strict JSON only.",
        'Response format: {"segments":[{"id":"0","text":"..."}]}',
    ])


def build_user_prompt(batch: List[Any], custom_prompt: Optional[str] = None) -> str:
    payload = {"segments": [{"id": segment.id, "text": segment.text} for segment in batch]}
    parts = []
    if custom_prompt and custom_prompt.strip():
        parts.append(f"Additional instructions:\n{custom_prompt.strip()}\n")
    parts.append("Content to translate:")
    parts.append(json.dumps(payload, ensure_ascii=False))
    return "\n".join(parts)


def categorize_error(error: Exception, attempt: int) -> Tuple[bool, float]:
    """
    Categorize an error and determine retry strategy.

    Returns:
        Tuple of (should_retry, wait_time_seconds)
    """
    if isinstance(error, BackendRequestError):
        # Rate limiting (429) - long backoff
        if getattr(error, "status", None) == 429:
            return True, min(5 * (2 ** attempt), 60)
        # Server errors, transport failures and timeouts - standard backoff
        return True, 2 ** attempt

    # Parse errors - retry once
    if isinstance(error, OutputMalformedError):
        return attempt < 1, 1.0

    # Authentication, bad requests, configuration - don't retry
    return False, 0


def run_with_retries(call: Callable[[], Dict[str, str]], max_retries: int, provider: str) -> Dict[str, str]:
    """Run one batch call, retrying retryable failures; the last error propagates."""
    max_retries = max(1, int(max_retries or 1))
    last_error = None

    for attempt in range(max_retries):
        try:
            if attempt > 0:
                logger.info(f"  {provider} retry attempt {attempt + 1}/{max_retries}")
            return call()
        except TranslationError as e:
            last_error = e
            should_retry, wait_time = categorize_error(e, attempt)

            if should_retry and attempt < max_retries - 1:
                logger.warning(f"  Attempt {attempt + 1} failed: {e}. Waiting {wait_time}s before retry...")
                time.sleep(wait_time)
                continue
            logger.error(f"  {provider} batch failed: {e}")
            break

    raise last_error


def parse_batch_response(content: str) -> Dict[str, str]:
    from ai_translate.translation.utils import extract_translations_by_id, parse_json_from_model_output
    return extract_translations_by_id(parse_json_from_model_output(content))


class OpenAIBackend:
    """Chat-completion style backend (any OpenAI-compatible endpoint)."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = 120,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.model = model or DEFAULT_OPENAI_MODEL
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max_retries

    @property
    def endpoint(self) -> str:
        return self.api_url or ""

    def _config(self) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "api_url": self.api_url,
            "model": self.model,
            "timeout": self.timeout,
        }

    def _complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            return providers.call_openai_chat_completion(self._config(), system_prompt, user_prompt, True)
        except BackendUnsupportedFeatureError as e:
            logger.info(f"  JSON response format rejected ({e}); retrying with prompt-only formatting")
            return providers.call_openai_chat_completion(self._config(), system_prompt, user_prompt, False)

    def translate_batch(self, batch: List[Any], target_locale: str, custom_prompt: Optional[str] = None) -> Dict[str, str]:
        """Translate a batch of segments; returns {segment id: translated text}."""
        if not batch:
            return {}
        system_prompt = build_system_prompt(target_locale)
        user_prompt = build_user_prompt(batch, custom_prompt)
        logger.debug(f"Translating {len(batch)} segments to {target_locale} with {self.model}")
        return run_with_retries(
            lambda: parse_batch_response(self._complete(system_prompt, user_prompt)),
            self.max_retries,
            "OpenAI",
        )


class ReplicateBackend:
    """Generic-invocation style backend (replicate predictions)."""

    name = "replicate"

    def __init__(
        self,
        api_token: str,
        model: str,
        api_url: Optional[str] = None,
        timeout: float = 120,
        max_retries: int = 3,
    ):
        self.api_token = api_token
        self.model = model
        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max_retries

    @property
    def endpoint(self) -> str:
        return ""

    def translate_batch(self, batch: List[Any], target_locale: str, custom_prompt: Optional[str] = None) -> Dict[str, str]:
        """Translate a batch of segments; returns {segment id: translated text}."""
        if not batch:
            return {}
        config = {
            "api_token": self.api_token,
            "api_url": self.api_url,
            "model": self.model,
            "timeout": self.timeout,
        }
        system_prompt = build_system_prompt(target_locale)
        user_prompt = build_user_prompt(batch, custom_prompt)
        logger.debug(f"Translating {len(batch)} segments to {target_locale} with {self.model}")
        return run_with_retries(
            lambda: parse_batch_response(providers.call_replicate_prediction(config, system_prompt, user_prompt)),
            self.max_retries,
            "Replicate",
        )


def _build_openai(settings: Dict[str, Any]) -> OpenAIBackend:
    translation = settings.get("translation") or {}
    return OpenAIBackend(
        api_key=settings.get("api_key"),
        model=settings.get("model"),
        api_url=settings.get("api_url"),
        timeout=translation.get("timeout", 120),
        max_retries=translation.get("max_retries", 3),
    )


def _build_replicate(settings: Dict[str, Any]) -> ReplicateBackend:
    translation = settings.get("translation") or {}
    return ReplicateBackend(
        api_token=settings.get("replicate_api_token"),
        model=settings.get("replicate_model"),
        timeout=translation.get("timeout", 120),
        max_retries=translation.get("max_retries", 3),
    )


BACKENDS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "openai": _build_openai,
    "replicate": _build_replicate,
}


def validate_ai_config(settings: Optional[Dict[str, Any]] = None) -> None:
    """
    Validate that the selected backend is configured.

    Args:
        settings: Effective settings; resolved from env/database if omitted.

    Raises:
        PreconditionError: If configuration is invalid or missing, with code and details.
    """
    if settings is None:
        settings = get_effective_settings()
    provider = settings.get("provider") or "openai"

    if provider not in BACKENDS:
        raise PreconditionError(
            f"Unsupported AI provider '{provider}'",
            code="ai_config_missing",
            details={"provider": provider},
        )

    if provider == "openai" and not settings.get("api_key"):
        raise PreconditionError(
            "OpenAI API key not configured. Set AI_TRANSLATE_API_KEY or save it in Settings.",
            code="ai_config_missing",
            details={"provider": provider, "missing_field": "api_key"},
        )

    if provider == "replicate":
        if not settings.get("replicate_api_token"):
            raise PreconditionError(
                "Replicate API token not configured. Set AI_TRANSLATE_REPLICATE_API_TOKEN or save it in Settings.",
                code="ai_config_missing",
                details={"provider": provider, "missing_field": "replicate_api_token"},
            )
        if not settings.get("replicate_model"):
            raise PreconditionError(
                "Replicate model not configured",
                code="ai_config_missing",
                details={"provider": provider, "missing_field": "replicate_model"},
            )


def create_backend(settings: Optional[Dict[str, Any]] = None):
    """Build the backend selected by the effective settings."""
    if settings is None:
        settings = get_effective_settings()
    validate_ai_config(settings)
    provider = settings.get("provider") or "openai"
    backend = BACKENDS[provider](settings)
    logger.info(f"Initialized AI backend: {provider} (model: {backend.model})")
    return backend
