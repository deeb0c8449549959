from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime


class DocumentResponse(BaseModel):
    """Uploaded document"""
    id: int
    filename: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    status: str = Field(..., description="pending, processing, processed or failed")
    track_id: Optional[str] = Field(None, description="LightRAG upload tracking id")
    rag_document_id: Optional[str] = Field(None, description="Permanent LightRAG document id")
    processing_status: Optional[Dict[str, Any]] = None
    processing_started_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    upload_date: Optional[datetime] = None

    class Config:
        from_attributes = True


class DocumentUploadResponse(BaseModel):
    document: DocumentResponse
    warnings: List[str] = Field(default_factory=list)
    message: str


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total: int
