import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from ai_translate.core import database as db
from ai_translate.core.schema import initialize_database
from ai_translate.logger import get_logger, set_log_mode, LOG_MODES

logger = get_logger(__name__)

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent

# Translation configuration constants
DEFAULT_MAX_SEGMENTS_PER_CHUNK = 50
DEFAULT_MAX_CHARS_PER_CHUNK = 12000
DEFAULT_MAX_STALLED_CALLS = 3

# Provider configuration constants
BUILTIN_PROVIDERS = ["openai", "replicate"]

BUILTIN_PROVIDER_DISPLAY_NAMES = {
    "openai": "OpenAI",
    "replicate": "Replicate",
}

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OPENAI_API_URL = "https://api.openai.com/v1"
DEFAULT_REPLICATE_API_URL = "https://api.replicate.com/v1"

PROVIDER_DEFAULTS = {
    "max_retries": 3,
    "timeout": 120
}

# Environment variables override stored settings, which override defaults
ENV_OVERRIDES = {
    "provider": "AI_TRANSLATE_PROVIDER",
    "api_key": "AI_TRANSLATE_API_KEY",
    "api_url": "AI_TRANSLATE_API_URL",
    "model": "AI_TRANSLATE_MODEL",
    "replicate_api_token": "AI_TRANSLATE_REPLICATE_API_TOKEN",
    "replicate_model": "AI_TRANSLATE_REPLICATE_MODEL",
}

# Static defaults for every stored field
DEFAULT_CONFIG = {
    "provider": "openai",
    "api_key": None,
    "api_url": None,
    "model": DEFAULT_OPENAI_MODEL,
    "replicate_api_token": None,
    "replicate_model": None,
    "translation": {
        "max_segments_per_chunk": DEFAULT_MAX_SEGMENTS_PER_CHUNK,
        "max_chars_per_chunk": DEFAULT_MAX_CHARS_PER_CHUNK,
        "max_retries": PROVIDER_DEFAULTS["max_retries"],
        "timeout": PROVIDER_DEFAULTS["timeout"],
        "max_stalled_calls": DEFAULT_MAX_STALLED_CALLS,
    },
    "log_mode": "off",
}


def load_env_files():
    """Load .env from the project root or the working directory."""
    for candidate in (BASE_DIR / ".env", Path.cwd() / ".env"):
        if candidate.exists():
            load_dotenv(candidate)
            logger.debug(f"Loaded environment from {candidate}")
            return


def initialize_app():
    """
    Initialize the application.
    Creates the database tables and applies the stored log mode.
    """
    logger.info("Initializing application...")
    load_env_files()

    initialize_database()
    logger.info("Database initialized")

    stored = load_config()
    if not os.environ.get("AI_TRANSLATE_LOG_MODE"):
        set_log_mode(stored.get("log_mode") or DEFAULT_CONFIG["log_mode"])

    logger.info("Application initialization complete")


def normalize_string(value: Any) -> Optional[str]:
    """Trim strings; anything empty or non-string becomes None."""
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed if trimmed else None


def normalize_provider(value: Any) -> Optional[str]:
    trimmed = normalize_string(value)
    return trimmed if trimmed in BUILTIN_PROVIDERS else None


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = int(value)
    return value if value > 0 else None


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def normalize_config(raw: Any) -> Dict[str, Any]:
    """Keep only known, well-typed settings. Unknown keys are dropped."""
    if not isinstance(raw, dict):
        return {}

    result: Dict[str, Any] = {}
    provider = normalize_provider(raw.get("provider"))
    if provider:
        result["provider"] = provider
    for key in ("api_key", "api_url", "model", "replicate_api_token", "replicate_model"):
        value = normalize_string(raw.get(key))
        if value:
            result[key] = value

    translation = raw.get("translation")
    if isinstance(translation, dict):
        normalized_translation = {}
        for key in ("max_segments_per_chunk", "max_chars_per_chunk", "max_retries", "max_stalled_calls"):
            value = _positive_int(translation.get(key))
            if value is not None:
                normalized_translation[key] = value
        timeout = _positive_number(translation.get("timeout"))
        if timeout is not None:
            normalized_translation["timeout"] = timeout
        if normalized_translation:
            result["translation"] = normalized_translation

    log_mode = normalize_string(raw.get("log_mode"))
    if log_mode in LOG_MODES:
        result["log_mode"] = log_mode

    return result


def load_config() -> Dict[str, Any]:
    """Load the stored configuration from database (normalized, without defaults)."""
    try:
        config_json = db.get_app_config('config')
        if not config_json:
            logger.debug("No config in database")
            return {}
        config = normalize_config(json.loads(config_json))
        logger.debug("Configuration loaded from database")
        return config
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config from database: {e}")
        logger.warning("Using default configuration")
        return {}


def save_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize and save the configuration to database."""
    normalized = normalize_config(config)
    try:
        config_json = json.dumps(normalized, ensure_ascii=False)
        db.set_app_config('config', config_json)
        logger.info("Configuration saved to database")
    except Exception as e:
        logger.error(f"Failed to save config to database: {e}")
        raise
    return normalized


def resolve_effective_value(
    env_value: Optional[str],
    stored_value: Optional[Any],
    fallback: Optional[Any],
) -> Tuple[Optional[Any], str]:
    """Pick the first configured value and report where it came from."""
    if env_value:
        return env_value, "env"
    if stored_value:
        return stored_value, "settings"
    return fallback, "default"


def get_effective_settings(stored: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Resolve every setting with env > stored > default precedence.

    Returns a flat dict of values plus a `sources` dict naming where each value
    came from. The result carries secrets; never return it to a client as is.
    """
    if stored is None:
        stored = load_config()

    effective: Dict[str, Any] = {"sources": {}}
    for key, env_name in ENV_OVERRIDES.items():
        env_value = normalize_string(os.environ.get(env_name))
        if key == "provider":
            env_value = normalize_provider(env_value)
        value, source = resolve_effective_value(env_value, stored.get(key), DEFAULT_CONFIG.get(key))
        effective[key] = value
        effective["sources"][key] = source

    translation = dict(DEFAULT_CONFIG["translation"])
    translation.update(stored.get("translation") or {})
    effective["translation"] = translation
    effective["log_mode"] = stored.get("log_mode") or DEFAULT_CONFIG["log_mode"]
    return effective


def get_secret_length(value: Optional[str]) -> int:
    if not isinstance(value, str):
        return 0
    return len(value.strip())


def describe_settings(stored: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Client-safe view of stored, environment and effective settings."""
    if stored is None:
        stored = load_config()
    effective = get_effective_settings(stored)
    sources = effective["sources"]

    def env_set(key: str) -> bool:
        return bool(normalize_string(os.environ.get(ENV_OVERRIDES[key])))

    return {
        "stored": public_settings(stored),
        "env": {key: env_set(key) for key in ENV_OVERRIDES},
        "effective": {
            "provider": effective["provider"],
            "provider_source": sources["provider"],
            "openai": {
                "api_url": effective["api_url"] or "",
                "api_url_source": sources["api_url"],
                "model": effective["model"] or DEFAULT_OPENAI_MODEL,
                "model_source": sources["model"],
                "api_key_set": bool(effective["api_key"]),
                "api_key_length": get_secret_length(effective["api_key"]),
                "api_key_source": sources["api_key"],
            },
            "replicate": {
                "model": effective["replicate_model"] or "",
                "model_source": sources["replicate_model"],
                "api_token_set": bool(effective["replicate_api_token"]),
                "api_token_length": get_secret_length(effective["replicate_api_token"]),
                "api_token_source": sources["replicate_api_token"],
            },
            "translation": effective["translation"],
            "log_mode": effective["log_mode"],
        },
        "meta": {
            "builtin_providers": [
                {"id": p, "name": BUILTIN_PROVIDER_DISPLAY_NAMES[p]} for p in BUILTIN_PROVIDERS
            ],
            "provider_defaults": PROVIDER_DEFAULTS,
        },
    }


def public_settings(stored: Dict[str, Any]) -> Dict[str, Any]:
    """Stored settings with secrets replaced by set/length markers."""
    return {
        "provider": stored.get("provider") or DEFAULT_CONFIG["provider"],
        "openai": {
            "api_url": stored.get("api_url") or "",
            "model": stored.get("model") or "",
            "api_key_set": bool(stored.get("api_key")),
            "api_key_length": get_secret_length(stored.get("api_key")),
        },
        "replicate": {
            "model": stored.get("replicate_model") or "",
            "api_token_set": bool(stored.get("replicate_api_token")),
            "api_token_length": get_secret_length(stored.get("replicate_api_token")),
        },
        "translation": stored.get("translation") or {},
        "log_mode": stored.get("log_mode") or DEFAULT_CONFIG["log_mode"],
    }
