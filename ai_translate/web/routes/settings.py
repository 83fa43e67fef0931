"""Settings management API routes."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

import ai_translate.config as config
from ai_translate.config import BUILTIN_PROVIDERS
from ai_translate.logger import LOG_MODES, get_logger, set_log_mode

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)

STRING_FIELDS = ("api_key", "api_url", "model", "replicate_api_token", "replicate_model")


@settings_bp.get("/settings")
def get_settings():
    """Return stored, environment and effective settings (secrets masked)."""
    return jsonify(config.describe_settings())


@settings_bp.put("/settings")
def update_settings():
    """
    Update stored settings.

    Fields absent from the request keep their stored value; an empty string
    clears a stored value. Environment variables still take precedence.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request body must be a JSON object", "code": "invalid_settings"}), 400

    validation_error = validate_settings(data)
    if validation_error:
        return jsonify({"error": validation_error, "code": "invalid_settings"}), 400

    current_config = config.load_config()

    if "provider" in data:
        current_config["provider"] = data["provider"]

    for key in STRING_FIELDS:
        if key in data:
            current_config[key] = data[key]

    if isinstance(data.get("translation"), dict):
        translation = dict(current_config.get("translation") or {})
        translation.update(data["translation"])
        current_config["translation"] = translation

    if "log_mode" in data:
        current_config["log_mode"] = data["log_mode"]

    saved = config.save_config(current_config)

    if "log_mode" in saved:
        set_log_mode(saved["log_mode"])

    logger.info("Settings updated successfully")
    return jsonify({"message": "Settings updated successfully", **config.describe_settings(saved)})


def validate_settings(data: Dict[str, Any]) -> str | None:
    """Validate a settings update and return an error message if invalid."""
    provider = data.get("provider")
    if provider is not None and provider not in BUILTIN_PROVIDERS:
        return f"Invalid AI provider: {provider}. Supported: {', '.join(BUILTIN_PROVIDERS)}"

    for key in STRING_FIELDS:
        if key in data and data[key] is not None and not isinstance(data[key], str):
            return f"{key} must be a string"

    translation = data.get("translation")
    if translation is not None:
        if not isinstance(translation, dict):
            return "translation must be an object"
        for key in ("max_segments_per_chunk", "max_chars_per_chunk", "max_retries", "max_stalled_calls"):
            if key in translation:
                value = translation[key]
                if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                    return f"translation.{key} must be a positive integer"
        if "timeout" in translation:
            timeout = translation["timeout"]
            if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
                return "translation.timeout must be a positive number"

    log_mode = data.get("log_mode")
    if log_mode is not None and log_mode not in LOG_MODES:
        return f"Invalid log mode: {log_mode}"

    return None
