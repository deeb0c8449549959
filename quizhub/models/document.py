"""
Document model - educator uploads indexed by the LightRAG service
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from quizhub.core.timezone import utcnow
from quizhub.db.database import Base
from quizhub.models.enums import DocumentStatus


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    educator_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    filename = Column(String, nullable=False)
    file_path = Column(String, nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String, nullable=True)

    status = Column(String, nullable=False, default=DocumentStatus.PENDING, index=True)
    # {"track_id": ..., "doc_id": ...}
    processed_data = Column(JSON, nullable=True)
    # last pipeline snapshot returned by LightRAG
    processing_status = Column(JSON, nullable=True)
    processing_started_at = Column(DateTime, nullable=True)
    processing_completed_at = Column(DateTime, nullable=True)

    upload_date = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    educator = relationship("User", back_populates="documents")

    @property
    def track_id(self):
        return (self.processed_data or {}).get("track_id")

    @property
    def rag_document_id(self):
        return (self.processed_data or {}).get("doc_id")

    def __repr__(self):
        return f"<Document(id={self.id}, filename={self.filename}, status={self.status})>"
