"""
Content Repository

Stand-in for the host content system: resolves content type and component
schemas and fetches locale versions of documents from the local sqlite
database. The orchestrator only depends on the three methods below, so any
object exposing them can replace this class.
"""

from typing import Any, Dict, Optional

from ai_translate.core import database as db
from ai_translate.logger import get_logger

logger = get_logger(__name__)


class ContentRepository:
    """sqlite-backed schema registry and document source."""

    def resolve_schema(self, uid: str) -> Optional[Dict[str, Any]]:
        return db.get_content_type(uid)

    def get_components(self) -> Dict[str, Dict[str, Any]]:
        return db.get_all_components()

    def fetch_localized_document(
        self,
        uid: str,
        document_id: str,
        locale: str,
        populate: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch one locale version of a document.

        Documents are stored fully populated, so `populate` never narrows the
        result here; it is accepted to honour the host contract.
        """
        logger.debug(f"Fetching {uid}/{document_id} ({locale}), populate keys: {sorted((populate or {}).keys())}")
        return db.get_document(uid, document_id, locale)
