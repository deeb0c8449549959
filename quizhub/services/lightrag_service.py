"""
LightRAG client.

Documents are uploaded to the RAG service, which indexes them into a knowledge
graph. Uploads come back with a temporary track id; once indexing finishes the
track status exposes the permanent "doc-..." id.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, List

import httpx

from quizhub.core.config import settings
from quizhub.services.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)

COMMON_WORDS = {
    "the", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "this", "that", "these", "those",
}
MAX_ENTITIES = 20

_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:\s[A-Z][a-z]+)*\b")
_QUOTED = re.compile(r'"([^"]+)"')
_PARENTHESIZED = re.compile(r"\(([^)]+)\)")


@dataclass
class TrackStatus:
    exists: bool
    processed: bool
    status: str
    message: Optional[str] = None
    document_id: Optional[str] = None


class LightRAGService:
    """Thin async wrapper over the LightRAG REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.LIGHTRAG_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.LIGHTRAG_API_KEY
        self.timeout = timeout or settings.LIGHTRAG_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise ConfigurationError(
                "LightRAG API key is not configured. Please set LIGHTRAG_API_KEY environment variable."
            )
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"X-API-Key": self.api_key, "accept": "application/json"},
            timeout=self.timeout,
            transport=self._transport,
        )

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        if response.status_code >= 400:
            logger.error(f"[LightRAG] {action} failed (HTTP {response.status_code}): {response.text[:300]}")
            raise ExternalServiceError(f"LightRAG {action} error: HTTP {response.status_code}")

    async def upload_document(self, filename: str, content: bytes, mime_type: Optional[str] = None) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post(
                    "/documents/upload",
                    files={"file": (filename, content, mime_type or "application/octet-stream")},
                )
        except httpx.HTTPError as e:
            logger.error(f"[LightRAG] upload of {filename} failed: {e}")
            raise ExternalServiceError(f"LightRAG upload failed: {str(e)}")
        self._raise_for_status(response, "upload")
        data = response.json()
        logger.info(f"[LightRAG] uploaded {filename}: status={data.get('status')} track_id={data.get('track_id')}")
        return data

    async def check_track_status(self, track_id: str) -> TrackStatus:
        try:
            async with self._client() as client:
                response = await client.get(f"/documents/track_status/{track_id}")
        except httpx.HTTPError as e:
            logger.error(f"[LightRAG] track status {track_id} failed: {e}")
            return TrackStatus(exists=False, processed=False, status="error", message=str(e))

        if response.status_code == 404:
            return TrackStatus(exists=False, processed=False, status="not_found")
        if response.status_code >= 400:
            logger.warning(f"[LightRAG] unexpected status {response.status_code} for track {track_id}")
            return TrackStatus(exists=False, processed=False, status="error")

        data = response.json()
        documents = data.get("documents") or []
        permanent_id = None
        document_status = None
        if documents:
            permanent_id = documents[0].get("id")
            document_status = documents[0].get("status")

        summary = data.get("status_summary") or {}
        processed_count = summary.get("PROCESSED") or summary.get("processed") or 0

        processed = bool(documents) or processed_count > 0 or (
            document_status in ("PROCESSED", "processed", "ready")
        )
        return TrackStatus(
            exists=True,
            processed=processed,
            status="ready" if processed else "tracking",
            message=(
                f"Document ready (ID: {permanent_id or track_id})" if processed else "Document still processing"
            ),
            document_id=permanent_id,
        )

    async def check_document_exists(self, document_id: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"/documents/{document_id}")
        except httpx.HTTPError as e:
            logger.error(f"[LightRAG] existence check for {document_id} failed: {e}")
            return False
        if response.status_code == 404:
            return False
        if response.status_code >= 400:
            logger.warning(f"[LightRAG] unexpected status {response.status_code} checking {document_id}")
            return False
        return True

    async def delete_document(self, document_id: str, delete_file: bool = False) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE",
                    "/documents/delete_document",
                    json={"doc_ids": [document_id], "delete_file": delete_file},
                )
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"LightRAG delete failed: {str(e)}")
        self._raise_for_status(response, "delete")
        return response.json()

    async def check_pipeline_status(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get("/documents/pipeline_status")
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"LightRAG pipeline status failed: {str(e)}")
        self._raise_for_status(response, "pipeline status")
        return response.json()

    async def check_entity_exists(self, entity: str) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.post("/graph/entity/exists", json={"entity": entity})
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"LightRAG entity check failed: {str(e)}")
        self._raise_for_status(response, "entity check")
        return response.json()

    async def check_multiple_entities(self, entities: List[str]) -> Dict[str, Dict[str, Any]]:
        async def check(entity: str):
            try:
                return entity, await self.check_entity_exists(entity)
            except ExternalServiceError as e:
                return entity, {"exists": False, "entity": entity, "message": e.message}

        pairs = await asyncio.gather(*(check(entity) for entity in entities))
        return dict(pairs)

    @staticmethod
    def extract_entities_from_text(text: str) -> List[str]:
        """Heuristic entity candidates: capitalised phrases, quoted and parenthesised terms."""
        if not text:
            return []
        candidates: List[str] = []
        candidates.extend(_PROPER_NOUN.findall(text))
        candidates.extend(_QUOTED.findall(text))
        candidates.extend(_PARENTHESIZED.findall(text))

        seen = set()
        entities = []
        for candidate in candidates:
            candidate = candidate.strip()
            if candidate in seen:
                continue
            seen.add(candidate)
            if len(candidate) > 2 and candidate.lower() not in COMMON_WORDS:
                entities.append(candidate)
        return entities[:MAX_ENTITIES]


_lightrag_service: Optional[LightRAGService] = None


def get_lightrag_service() -> LightRAGService:
    global _lightrag_service
    if _lightrag_service is None:
        _lightrag_service = LightRAGService()
    return _lightrag_service
