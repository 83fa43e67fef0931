"""Content registry API routes (schemas and document locale versions)."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, jsonify, request

from ai_translate.core import database as db
from ai_translate.logger import get_logger

content_bp = Blueprint("content", __name__)
logger = get_logger(__name__)


def _json_object_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    return data


@content_bp.put("/content-types/<uid>")
def put_content_type(uid: str):
    """Register or replace a content type schema."""
    schema = _json_object_body()
    if schema is None or not isinstance(schema.get("attributes"), dict):
        return jsonify({"error": "Schema must be an object with an 'attributes' object", "code": "invalid_schema"}), 400
    db.upsert_content_type(uid, schema)
    logger.info(f"Content type registered: {uid}")
    return jsonify({"uid": uid, "schema": schema})


@content_bp.get("/content-types/<uid>")
def get_content_type(uid: str):
    schema = db.get_content_type(uid)
    if schema is None:
        return jsonify({"error": f"Content type not found: {uid}", "code": "not_found"}), 404
    return jsonify({"uid": uid, "schema": schema})


@content_bp.put("/components/<uid>")
def put_component(uid: str):
    """Register or replace a component schema."""
    schema = _json_object_body()
    if schema is None or not isinstance(schema.get("attributes"), dict):
        return jsonify({"error": "Schema must be an object with an 'attributes' object", "code": "invalid_schema"}), 400
    db.upsert_component(uid, schema)
    logger.info(f"Component registered: {uid}")
    return jsonify({"uid": uid, "schema": schema})


@content_bp.put("/documents/<uid>/<document_id>/<locale>")
def put_document(uid: str, document_id: str, locale: str):
    """Store one locale version of a document (e.g. a translated result)."""
    data: Dict[str, Any] = _json_object_body()
    if data is None:
        return jsonify({"error": "Document must be a JSON object", "code": "invalid_document"}), 400
    db.upsert_document(uid, document_id, locale, data)
    logger.info(f"Document stored: {uid}/{document_id} ({locale})")
    return jsonify({"uid": uid, "document_id": document_id, "locale": locale, "document": data})


@content_bp.get("/documents/<uid>/<document_id>/<locale>")
def get_document(uid: str, document_id: str, locale: str):
    document = db.get_document(uid, document_id, locale)
    if document is None:
        return jsonify({"error": f"Document not found: {uid}/{document_id} ({locale})", "code": "not_found"}), 404
    return jsonify({"uid": uid, "document_id": document_id, "locale": locale, "document": document})


@content_bp.get("/documents/<uid>/<document_id>")
def list_document_locales(uid: str, document_id: str):
    """List the locales a document exists in."""
    return jsonify({"uid": uid, "document_id": document_id, "locales": db.get_document_locales(uid, document_id)})
