"""
Firestore Client

Reads inspection documents from the app's Firestore database over the REST
API and decodes Firestore typed values into plain dicts.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"


# ============== Value Decoding ==============

def decode_value(value: Dict[str, Any]) -> Any:
    """Decode one Firestore typed value ({"stringValue": "x"} -> "x")."""
    if "stringValue" in value:
        return value["stringValue"]
    elif "integerValue" in value:
        return int(value["integerValue"])
    elif "doubleValue" in value:
        return float(value["doubleValue"])
    elif "booleanValue" in value:
        return bool(value["booleanValue"])
    elif "nullValue" in value:
        return None
    elif "timestampValue" in value:
        return value["timestampValue"]
    elif "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    elif "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    elif "referenceValue" in value:
        return value["referenceValue"]
    elif "geoPointValue" in value:
        return dict(value["geoPointValue"])
    elif "bytesValue" in value:
        return value["bytesValue"]
    return None


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


def decode_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Firestore document into {"id": <doc id>, **fields}."""
    doc_id = document.get("name", "").rsplit("/", 1)[-1]
    return {"id": doc_id, **decode_fields(document.get("fields", {}))}


# ============== Client ==============

class FirestoreClient:
    """Client for Firestore REST reads"""

    def __init__(
        self,
        project_id: Optional[str] = None,
        api_key: Optional[str] = None,
        collection: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.project_id = project_id or os.getenv("FIREBASE_PROJECT_ID")
        self.api_key = api_key or os.getenv("FIREBASE_API_KEY")

        if not self.project_id:
            raise ValueError("FIREBASE_PROJECT_ID must be set")

        self.collection = collection or os.getenv("FIREBASE_COLLECTION", "inspections")
        self.page_size = page_size or int(os.getenv("FIREBASE_PAGE_SIZE", "300"))
        self.timeout = timeout or float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
        self._transport = transport

    @property
    def documents_url(self) -> str:
        return (
            f"{FIRESTORE_BASE_URL}/projects/{self.project_id}"
            f"/databases/(default)/documents/{self.collection}"
        )

    async def list_documents(self, order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        List every document in the collection, following page tokens.

        Returns:
            Raw Firestore document payloads
        """
        documents: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"pageSize": self.page_size}
        if order_by:
            params["orderBy"] = order_by
        if self.api_key:
            params["key"] = self.api_key

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            while True:
                response = await client.get(self.documents_url, params=params)
                response.raise_for_status()
                page = response.json()

                documents.extend(page.get("documents", []))

                next_token = page.get("nextPageToken")
                if not next_token:
                    break
                params["pageToken"] = next_token

        return documents

    async def get_all_inspections(self) -> List[Dict[str, Any]]:
        """All inspections, newest first, as plain dicts."""
        documents = await self.list_documents(order_by="createdAt desc")
        inspections = [decode_document(doc) for doc in documents]
        logger.info(f"[Firestore] Fetched {len(inspections)} documents from {self.collection}")
        return inspections


# Singleton instance
_firestore_client: Optional[FirestoreClient] = None


def get_firestore_client() -> FirestoreClient:
    """Get or create Firestore client instance"""
    global _firestore_client
    if _firestore_client is None:
        _firestore_client = FirestoreClient()
    return _firestore_client
