from sqlalchemy import JSON, Column, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB

from .database import Base

DocumentData = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    __tablename__ = "document"

    collection = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    data = Column(DocumentData, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("idx_document_collection", "collection"),)
