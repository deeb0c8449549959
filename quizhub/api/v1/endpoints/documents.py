"""
Educator document endpoints
Upload to local storage + LightRAG, list, status refresh and delete
"""

from fastapi import APIRouter, HTTPException, status, Depends, File, UploadFile, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from quizhub.api.dependencies import require_educator
from quizhub.db.database import get_db
from quizhub.models.user import User
from quizhub.schemas.document import DocumentResponse, DocumentUploadResponse, DocumentListResponse
from quizhub.services import document_service
from quizhub.services.errors import QuizHubError
from quizhub.services.lightrag_service import LightRAGService, get_lightrag_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/upload", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(..., description="pdf, txt, doc, docx, md, csv or rtf"),
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    """
    Save the file and forward it to LightRAG for indexing.

    A document LightRAG refuses is kept with status ``failed`` so the
    educator can see why; files over the size limit are rejected with 413.
    """
    try:
        content = await file.read()
        logger.info(f"[Document upload] educator {current_user.id} uploading {file.filename}")
        result = await document_service.upload_document(
            db, current_user, file.filename, content, file.content_type, lightrag
        )
        db.commit()
        return DocumentUploadResponse(
            document=DocumentResponse.model_validate(result["document"]),
            warnings=result["warnings"],
            message=result["message"],
        )

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Document upload] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to upload document: {str(e)}"
        )


@router.get("", response_model=DocumentListResponse)
def list_documents(
    status_filter: Optional[str] = Query(None, alias="status", description="pending, processing, processed or failed"),
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    documents = document_service.list_documents(db, current_user, status_filter)
    return DocumentListResponse(
        documents=[DocumentResponse.model_validate(d) for d in documents],
        total=len(documents),
    )


@router.get("/pipeline-status")
async def get_pipeline_status(
    current_user: User = Depends(require_educator),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    """LightRAG indexing pipeline snapshot (busy flag, queued jobs)."""
    return await lightrag.check_pipeline_status()


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db)
):
    return document_service.get_document(db, current_user, document_id)


@router.get("/{document_id}/status", response_model=DocumentResponse)
async def refresh_document_status(
    document_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    """Poll LightRAG for a document that is still processing."""
    try:
        document = document_service.get_document(db, current_user, document_id)
        document = await document_service.refresh_status(db, document, lightrag)
        db.commit()
        return document

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Document status] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to check document status: {str(e)}"
        )


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: int,
    current_user: User = Depends(require_educator),
    db: Session = Depends(get_db),
    lightrag: LightRAGService = Depends(get_lightrag_service)
):
    try:
        document = document_service.get_document(db, current_user, document_id)
        file_path = await document_service.delete_document(db, document, lightrag)
        db.commit()
        document_service.remove_stored_file(file_path)
        return None

    except (HTTPException, QuizHubError):
        raise
    except Exception as e:
        logger.error(f"[Document delete] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to delete document: {str(e)}"
        )
