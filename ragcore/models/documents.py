"""
Database models for document, chunk and embedding storage.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.dialects.postgresql import JSONB
from pgvector.sqlalchemy import Vector

from ..config.processor import EmbeddingConfig

Base = declarative_base()

EMBEDDING_DIMENSION = EmbeddingConfig().dimension


def _uuid() -> str:
    return str(uuid.uuid4())


class DocumentModel(Base):
    """One ingested content unit, owned by a single user."""
    __tablename__ = 'documents'

    id = Column(String(36), primary_key=True, default=_uuid)
    title = Column(String, nullable=False)
    file_path = Column(String, nullable=True)
    file_type = Column(String, nullable=True)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String(20), nullable=False, default='processing')
    error_message = Column(Text, nullable=True)
    source_type = Column(String(32), nullable=False, default='file_upload')
    source_id = Column(String, nullable=True)
    source_created_at = Column(DateTime, nullable=True)
    source_updated_at = Column(DateTime, nullable=True)
    doc_metadata = Column('metadata', JSONB, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    chunks = relationship(
        "ChunkModel",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'processed', 'error')",
            name='documents_status_check'
        ),
    )


class ChunkModel(Base):
    """A bounded slice of a document's text."""
    __tablename__ = 'chunks'

    id = Column(String(36), primary_key=True, default=_uuid)
    document_id = Column(
        String(36), ForeignKey('documents.id', ondelete='CASCADE'), nullable=False
    )
    content = Column(Text, nullable=False)
    chunk_index = Column(Integer, nullable=False)
    chunk_metadata = Column('metadata', JSONB, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.now)
    document = relationship("DocumentModel", back_populates="chunks")
    embeddings = relationship(
        "EmbeddingModel",
        back_populates="chunk",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    __table_args__ = (
        CheckConstraint("length(trim(content)) > 0", name='chunks_content_not_empty'),
        Index('ix_chunks_document_index', 'document_id', 'chunk_index'),
    )


class EmbeddingModel(Base):
    """Vector for one chunk under one embedding model."""
    __tablename__ = 'embeddings'

    id = Column(String(36), primary_key=True, default=_uuid)
    chunk_id = Column(
        String(36), ForeignKey('chunks.id', ondelete='CASCADE'), nullable=False, index=True
    )
    embedding = Column(Vector(EMBEDDING_DIMENSION), nullable=False)
    model = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    chunk = relationship("ChunkModel", back_populates="embeddings")
