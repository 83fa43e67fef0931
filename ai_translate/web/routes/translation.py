"""Document translation API routes."""

from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

from ai_translate.logger import get_logger
from ai_translate.ai.exceptions import PreconditionError
from ai_translate.ai.service import validate_ai_config
from ai_translate.translation.manager import TranslationManager
from ai_translate.translation.progress import TranslationProgress
from ai_translate.web.tasks import cancel_job, create_translation_job, get_job, serialize_job

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)

# Request keys as sent by the CMS admin panel
CAMEL_CASE_ALIASES = {
    "document_id": "documentId",
    "source_locale": "sourceLocale",
    "target_locale": "targetLocale",
    "include_json": "includeJson",
    "max_chunks": "maxChunks",
}


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _get_field(data: Dict[str, Any], key: str) -> Any:
    """Request field by snake_case name, falling back to its camelCase alias."""
    if key in data:
        return data[key]
    return data.get(CAMEL_CASE_ALIASES.get(key, key))


def _parse_optional_int(data: Dict[str, Any], key: str) -> Optional[int]:
    value = _get_field(data, key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PreconditionError(f"{key} must be an integer", details={key: value})


def _parse_translate_request() -> Dict[str, Any]:
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    prompt = data.get("prompt")
    return {
        "uid": data.get("uid"),
        "document_id": _get_field(data, "document_id"),
        "source_locale": _get_field(data, "source_locale"),
        "target_locale": _get_field(data, "target_locale"),
        "prompt": prompt if isinstance(prompt, str) else None,
        "include_json": _parse_bool(_get_field(data, "include_json")),
    }


@translation_bp.post("/translate-document")
def translate_document():
    """Translate a whole document in one request and return it."""
    params = _parse_translate_request()
    document = TranslationManager().translate_document(**params)
    return jsonify(document)


@translation_bp.post("/translate-document/progress")
def translate_document_progress():
    """Translate at most max_chunks pending chunks; call again until done."""
    params = _parse_translate_request()
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    max_chunks = _parse_optional_int(data, "max_chunks")
    result = TranslationManager().translate_document_progress(max_chunks=max_chunks, **params)
    return jsonify(result)


@translation_bp.post("/translate-document-progress")
def translate_document_progress_envelope():
    """
    Same as /translate-document/progress, shaped for the CMS admin panel.

    Accepts camelCase request keys and answers with
    {"data": document, "meta": {"done", "progress", "cache"}} where the
    progress counters use the panel's names (totalSegments, ...).
    """
    params = _parse_translate_request()
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    max_chunks = _parse_optional_int(data, "max_chunks")
    manager = TranslationManager()
    result = manager.translate_document_progress(max_chunks=max_chunks, **params)
    return jsonify({
        "data": result["document"],
        "meta": {
            "done": result["done"],
            "progress": TranslationProgress.envelope_progress(result["progress"]),
            "cache": result["cache"],
        },
    })


@translation_bp.post("/cache/clear")
def clear_translation_cache():
    """Clear every non-empty translation cache bucket."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    include_previous_versions = _parse_bool(data.get("include_previous_versions"), default=True)
    result = TranslationManager().clear_translation_cache(include_previous_versions=include_previous_versions)
    logger.info(f"Translation cache cleared: {result}")
    return jsonify(result)


@translation_bp.post("/jobs")
def start_translation_job():
    """Start an asynchronous translation job for a document."""
    params = _parse_translate_request()
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    chunks_per_call = _parse_optional_int(data, "chunks_per_call")
    max_stalled_calls = _parse_optional_int(data, "max_stalled_calls")

    missing = [key for key in ("uid", "document_id", "source_locale", "target_locale") if not params[key]]
    if missing:
        raise PreconditionError(
            f"Missing parameters: {', '.join(missing)}",
            details={"missing": missing},
        )
    validate_ai_config()

    job = create_translation_job(
        chunks_per_call=chunks_per_call if chunks_per_call and chunks_per_call > 0 else None,
        max_stalled_calls=max_stalled_calls if max_stalled_calls and max_stalled_calls > 0 else None,
        **params,
    )
    return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202


@translation_bp.get("/jobs/<job_id>")
def get_translation_job(job_id: str):
    """Return status (and, once finished, the result) of a translation job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired", "code": "not_found"}), 404
    return jsonify(serialize_job(job))


@translation_bp.post("/jobs/<job_id>/cancel")
def cancel_translation_job(job_id: str):
    """Cancel a running translation job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired", "code": "not_found"}), 404

    if cancel_job(job_id):
        return jsonify({"status": "cancellation_requested", "job_id": job_id})
    return jsonify({"error": f"Job cannot be cancelled in state '{job.state}'", "code": "job_finished"}), 400
