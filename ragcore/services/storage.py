"""
Document store: documents, chunks, embeddings and similarity search.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.documents import ChunkModel, DocumentModel, EmbeddingModel
from ..models.schemas import (
    DocumentChunk, DocumentRecord, DocumentStatus, EmbeddingRecord, SourceType
)
from ..utils.errors import StorageError

logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Persistence collaborator used by the ingestion and query pipelines.

    Implementations are expected to enforce ownership; every read that
    exposes document content is scoped by the owning user id.
    """

    @abstractmethod
    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        ...

    @abstractmethod
    async def get_document(self, document_id: str, user_id: str) -> Optional[DocumentRecord]:
        ...

    @abstractmethod
    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None
    ) -> None:
        ...

    @abstractmethod
    async def get_document_metadata(self, document_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update_document_metadata(self, document_id: str, metadata: Dict[str, Any]) -> None:
        """Replace the document's metadata map."""

    @abstractmethod
    async def insert_chunks(self, chunks: List[DocumentChunk]) -> List[DocumentChunk]:
        """Insert one batch atomically and return the chunks with ids assigned."""

    @abstractmethod
    async def get_embeddings(
        self,
        chunk_ids: Sequence[str],
        model: Optional[str] = None
    ) -> Dict[str, EmbeddingRecord]:
        """Existing embeddings keyed by chunk id."""

    @abstractmethod
    async def store_embedding(
        self,
        chunk_id: str,
        embedding: List[float],
        model: str
    ) -> EmbeddingRecord:
        ...

    @abstractmethod
    async def match_documents(
        self,
        query_embedding: List[float],
        match_threshold: float,
        match_count: int,
        user_id: str,
        source_types: Optional[List[SourceType]] = None
    ) -> List[Dict[str, Any]]:
        """Raw similarity rows ordered by descending similarity."""


def _to_vector_literal(embedding: List[float]) -> str:
    return f"[{','.join(map(str, embedding))}]"


def verify_embedding_dimension(dimension: int) -> None:
    """Fail fast when the embeddings column cannot hold vectors of this length."""
    column_dimension = EmbeddingModel.__table__.c.embedding.type.dim
    if dimension != column_dimension:
        raise StorageError(
            f"Embedding model produces {dimension}-dimensional vectors but the "
            f"embeddings column holds {column_dimension}"
        )


def _to_record(model: DocumentModel) -> DocumentRecord:
    return DocumentRecord(
        id=model.id,
        title=model.title,
        user_id=model.user_id,
        status=model.status,
        file_path=model.file_path,
        file_type=model.file_type,
        error_message=model.error_message,
        source_type=model.source_type,
        source_id=model.source_id,
        source_created_at=model.source_created_at,
        source_updated_at=model.source_updated_at,
        metadata=model.doc_metadata or {},
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class PostgresDocumentStore(DocumentStore):
    """PostgreSQL + pgvector implementation on SQLAlchemy async sessions."""

    MATCH_SQL = text("""
        WITH similarity_scores AS (
            SELECT
                c.id,
                c.document_id,
                c.content,
                c.chunk_index,
                c.metadata,
                c.created_at,
                d.title AS document_title,
                d.source_type AS document_type,
                d.user_id,
                1 - (e.embedding <=> CAST(:embedding AS vector)) AS similarity
            FROM embeddings e
            JOIN chunks c ON e.chunk_id = c.id
            JOIN documents d ON c.document_id = d.id
            WHERE d.user_id = :user_id
              AND (CAST(:source_types AS text[]) IS NULL
                   OR d.source_type = ANY(CAST(:source_types AS text[])))
              AND 1 - (e.embedding <=> CAST(:embedding AS vector)) > :threshold
        )
        SELECT * FROM similarity_scores
        ORDER BY similarity DESC
        LIMIT :limit
    """)

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        model = DocumentModel(
            id=record.id or str(uuid.uuid4()),
            title=record.title,
            file_path=record.file_path,
            file_type=record.file_type,
            user_id=record.user_id,
            status=record.status.value,
            source_type=record.source_type.value,
            source_id=record.source_id,
            source_created_at=record.source_created_at,
            source_updated_at=record.source_updated_at,
            doc_metadata=record.metadata,
        )
        try:
            async with self.session_maker() as session:
                session.add(model)
                await session.commit()
                await session.refresh(model)
        except Exception as e:
            raise StorageError(f"Failed to create document: {str(e)}", cause=e) from e
        return _to_record(model)

    async def get_document(self, document_id: str, user_id: str) -> Optional[DocumentRecord]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(DocumentModel).where(
                    DocumentModel.id == document_id,
                    DocumentModel.user_id == user_id
                )
            )
            model = result.scalar_one_or_none()
        return _to_record(model) if model else None

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None
    ) -> None:
        async with self.session_maker() as session:
            await session.execute(
                update(DocumentModel)
                .where(DocumentModel.id == document_id)
                .values(
                    status=DocumentStatus(status).value,
                    error_message=error_message,
                    updated_at=datetime.now()
                )
            )
            await session.commit()

    async def get_document_metadata(self, document_id: str) -> Dict[str, Any]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(DocumentModel.doc_metadata).where(DocumentModel.id == document_id)
            )
            return dict(result.scalar_one_or_none() or {})

    async def update_document_metadata(self, document_id: str, metadata: Dict[str, Any]) -> None:
        async with self.session_maker() as session:
            await session.execute(
                update(DocumentModel)
                .where(DocumentModel.id == document_id)
                .values(doc_metadata=json.loads(json.dumps(metadata, default=str)))
            )
            await session.commit()

    async def insert_chunks(self, chunks: List[DocumentChunk]) -> List[DocumentChunk]:
        models = [
            ChunkModel(
                id=str(uuid.uuid4()),
                document_id=chunk.document_id,
                content=chunk.content,
                chunk_index=chunk.chunk_index,
                chunk_metadata=chunk.metadata,
            )
            for chunk in chunks
        ]
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    session.add_all(models)
        except Exception as e:
            raise StorageError(f"Failed to insert {len(chunks)} chunks: {str(e)}", cause=e) from e

        return [
            chunk.model_copy(update={"id": model.id, "created_at": model.created_at})
            for chunk, model in zip(chunks, models)
        ]

    async def get_embeddings(
        self,
        chunk_ids: Sequence[str],
        model: Optional[str] = None
    ) -> Dict[str, EmbeddingRecord]:
        if not chunk_ids:
            return {}
        query = select(EmbeddingModel).where(EmbeddingModel.chunk_id.in_(list(chunk_ids)))
        if model:
            query = query.where(EmbeddingModel.model == model)

        async with self.session_maker() as session:
            result = await session.execute(query)
            rows = result.scalars().all()

        found = {}
        for row in rows:
            vector = row.embedding
            if isinstance(vector, np.ndarray):
                vector = vector.astype(np.float32).tolist()
            found[row.chunk_id] = EmbeddingRecord(
                id=row.id,
                chunk_id=row.chunk_id,
                embedding=list(vector),
                model=row.model,
                created_at=row.created_at,
            )
        return found

    async def store_embedding(
        self,
        chunk_id: str,
        embedding: List[float],
        model: str
    ) -> EmbeddingRecord:
        row = EmbeddingModel(
            id=str(uuid.uuid4()),
            chunk_id=chunk_id,
            embedding=embedding,
            model=model,
        )
        try:
            async with self.session_maker() as session:
                session.add(row)
                await session.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to store embedding for chunk {chunk_id}: {str(e)}", cause=e
            ) from e
        return EmbeddingRecord(
            id=row.id, chunk_id=chunk_id, embedding=embedding, model=model,
            created_at=row.created_at
        )

    async def match_documents(
        self,
        query_embedding: List[float],
        match_threshold: float,
        match_count: int,
        user_id: str,
        source_types: Optional[List[SourceType]] = None
    ) -> List[Dict[str, Any]]:
        if not user_id:
            raise StorageError("Similarity search requires the owner user_id")
        params = {
            "embedding": _to_vector_literal(query_embedding),
            "threshold": match_threshold,
            "limit": match_count,
            "user_id": user_id,
            "source_types": [SourceType(s).value for s in source_types] if source_types else None,
        }
        async with self.session_maker() as session:
            result = await session.execute(self.MATCH_SQL, params)
            rows = [dict(row._mapping) for row in result]

        logger.info(f"Similarity search returned {len(rows)} rows")
        return rows
