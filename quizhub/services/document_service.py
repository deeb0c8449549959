"""
Educator documents: local copy on disk plus an indexed copy in LightRAG.
"""

import logging
import os
import re
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizhub.core.config import settings
from quizhub.core.timezone import utcnow, isoformat_utc
from quizhub.models import User, Document
from quizhub.models.enums import DocumentStatus
from quizhub.services.errors import NotFoundError, PermissionDeniedError, ValidationError, QuizHubError
from quizhub.services.lightrag_service import LightRAGService

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = {
    "application/pdf": ".pdf",
    "text/plain": ".txt",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/markdown": ".md",
    "text/csv": ".csv",
    "application/rtf": ".rtf",
}
SUPPORTED_EXTENSIONS = tuple(SUPPORTED_TYPES.values())
MIN_FILE_BYTES = 100
MAX_FILENAME_LENGTH = 255
_SAFE_FILENAME = re.compile(r"^[a-zA-Z0-9._\-\s()\[\]{}]+$")


class FileTooLargeError(QuizHubError):
    status_code = 413


@dataclass
class UploadValidation:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_upload(filename: str, size: int, mime_type: Optional[str], max_bytes: Optional[int] = None) -> UploadValidation:
    max_bytes = max_bytes or settings.MAX_UPLOAD_BYTES
    result = UploadValidation()
    extension = os.path.splitext(filename or "")[1].lower()

    if size == 0:
        result.errors.append("File appears to be empty")
    elif size < MIN_FILE_BYTES:
        result.errors.append(f"File size ({size} bytes) is too small. Minimum size is {MIN_FILE_BYTES} bytes")
    if extension not in SUPPORTED_EXTENSIONS:
        result.errors.append(
            f"File type '{extension or filename}' is not supported. "
            f"Supported types: {', '.join(ext[1:] for ext in SUPPORTED_EXTENSIONS)}"
        )
    if len(filename or "") > MAX_FILENAME_LENGTH:
        result.errors.append(f"File name is too long (max {MAX_FILENAME_LENGTH} characters)")

    if mime_type and mime_type not in SUPPORTED_TYPES:
        result.warnings.append(
            f"MIME type '{mime_type}' may not be fully supported. Upload may still work but processing could fail."
        )
    if filename and not _SAFE_FILENAME.match(filename):
        result.warnings.append("File name contains special characters that may cause issues")

    if size > max_bytes:
        raise FileTooLargeError(
            f"File size ({size / 1024 / 1024:.1f}MB) exceeds maximum limit of "
            f"{max_bytes / 1024 / 1024:.0f}MB",
            {"max_bytes": max_bytes},
        )
    return result


def _store_file(educator_id: int, filename: str, content: bytes) -> str:
    directory = os.path.join(settings.UPLOAD_DIR, str(educator_id))
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{uuid.uuid4().hex}_{os.path.basename(filename)}")
    with open(path, "wb") as f:
        f.write(content)
    return path


async def upload_document(
    db: Session,
    educator: User,
    filename: str,
    content: bytes,
    mime_type: Optional[str],
    lightrag: LightRAGService,
) -> Dict[str, Any]:
    validation = validate_upload(filename, len(content), mime_type)
    if not validation.is_valid:
        raise ValidationError("File validation failed", {"errors": validation.errors, "warnings": validation.warnings})

    document = Document(
        educator_id=educator.id,
        filename=filename,
        file_path=_store_file(educator.id, filename, content),
        file_size=len(content),
        mime_type=mime_type,
        status=DocumentStatus.PENDING,
    )
    db.add(document)
    db.flush()
    logger.info(f"[Document upload] {filename} ({len(content) / 1024:.1f}KB) saved as document {document.id}")

    try:
        response = await lightrag.upload_document(filename, content, mime_type)
    except QuizHubError as e:
        document.status = DocumentStatus.FAILED
        document.processing_status = {"error": e.message, "timestamp": isoformat_utc(utcnow())}
        db.flush()
        logger.error(f"[Document upload] LightRAG rejected document {document.id}: {e.message}")
        return {"document": document, "warnings": validation.warnings, "message": e.message}

    track_id = response.get("track_id")
    if not track_id:
        document.status = DocumentStatus.FAILED
        document.processing_status = {
            "error": "No track_id received from LightRAG - cannot track document",
            "response": response,
        }
        db.flush()
        return {
            "document": document,
            "warnings": validation.warnings,
            "message": "Document upload failed: No tracking ID received from LightRAG",
        }

    now = utcnow()
    document.processed_data = {"track_id": track_id, "doc_id": None}
    document.processing_status = {"status": response.get("status"), "message": response.get("message")}
    if response.get("status") == "duplicated":
        # LightRAG already has this file indexed
        document.status = DocumentStatus.PROCESSED
        document.processing_completed_at = now
    else:
        document.status = DocumentStatus.PROCESSING
        document.processing_started_at = now
    db.flush()
    return {
        "document": document,
        "warnings": validation.warnings,
        "message": response.get("message") or "Document uploaded successfully",
    }


def list_documents(db: Session, educator: User, status: Optional[str] = None) -> List[Document]:
    stmt = select(Document).where(Document.educator_id == educator.id)
    if status:
        stmt = stmt.where(Document.status == status)
    return db.execute(stmt.order_by(Document.upload_date.desc())).scalars().all()


def get_document(db: Session, educator: User, document_id: int) -> Document:
    document = db.execute(select(Document).where(Document.id == document_id)).scalar_one_or_none()
    if document is None:
        raise NotFoundError("Document not found")
    if document.educator_id != educator.id:
        raise PermissionDeniedError("You do not have access to this document")
    return document


def owned_documents(db: Session, educator: User, document_ids: List[int]) -> List[Document]:
    """All ids must belong to the educator."""
    if not document_ids:
        return []
    documents = db.execute(
        select(Document).where(Document.id.in_(document_ids), Document.educator_id == educator.id)
    ).scalars().all()
    missing = set(document_ids) - {d.id for d in documents}
    if missing:
        raise ValidationError("Some documents were not found or do not belong to you", {"missing": sorted(missing)})
    return documents


async def refresh_status(db: Session, document: Document, lightrag: LightRAGService) -> Document:
    if document.status == DocumentStatus.PROCESSED and document.rag_document_id:
        # indexed documents can still be removed on the LightRAG side
        exists = await lightrag.check_document_exists(document.rag_document_id)
        document.processing_status = {
            "status": "ready" if exists else "missing",
            "checked_at": isoformat_utc(utcnow()),
        }
        if not exists:
            logger.warning(f"[Document status] document {document.id} is missing from LightRAG")
        db.flush()
        return document
    if document.status != DocumentStatus.PROCESSING or not document.track_id:
        return document

    status = await lightrag.check_track_status(document.track_id)
    document.processing_status = {
        "status": status.status,
        "message": status.message,
        "checked_at": isoformat_utc(utcnow()),
    }
    if status.processed:
        document.status = DocumentStatus.PROCESSED
        document.processed_data = {**(document.processed_data or {}), "doc_id": status.document_id}
        document.processing_completed_at = utcnow()
        logger.info(f"[Document status] document {document.id} processed (LightRAG id {status.document_id})")
    db.flush()
    return document


async def delete_document(db: Session, document: Document, lightrag: LightRAGService) -> Optional[str]:
    """Delete the row and the LightRAG copy. Returns the stored file path for the caller to remove after commit."""
    rag_id = document.rag_document_id
    if rag_id:
        try:
            await lightrag.delete_document(rag_id)
        except QuizHubError as e:
            logger.warning(f"[Document delete] LightRAG delete failed for {rag_id}: {e.message}")

    file_path = document.file_path
    db.delete(document)
    db.flush()
    logger.info(f"[Document delete] document {document.id} deleted")
    return file_path


def remove_stored_file(file_path: Optional[str]) -> None:
    if file_path and os.path.exists(file_path):
        os.remove(file_path)
