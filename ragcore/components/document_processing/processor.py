"""
Document processing component: extraction, chunking, storage and embedding
for one document at a time.

The document record is created in ``processing`` state before any work
starts. From then on every failure is recorded on the record (``error`` plus
the message) and re-raised as a ``DocumentProcessingError`` tagged with the
stage that failed and the document id.
"""

import logging
import os
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from ...config.processor import ChunkerConfig, ProcessorConfig
from ...models.schemas import (
    DocumentChunk, DocumentProcessingResult, DocumentRecord, DocumentStatus,
    DocumentStatusReport, ProcessDocumentRequest
)
from ...services.blob_storage import BlobStorage
from ...services.embeddings import EmbeddingService
from ...services.storage import DocumentStore
from ...utils.errors import DocumentProcessingError, ProcessingStage
from ...utils.monitoring import ProcessingMonitor
from ...utils.text import content_hash, sanitize_text, word_count
from ...utils.validation import InputValidator
from ..chunking.chunker import DocumentChunker
from ..extraction.extractor import TextExtractor

logger = logging.getLogger(__name__)


class DocumentProcessor:
    """Handles document ingestion and storage."""

    def __init__(
        self,
        store: DocumentStore,
        blob_storage: BlobStorage,
        embedding_service: EmbeddingService,
        config: Optional[ProcessorConfig] = None,
        monitor: Optional[ProcessingMonitor] = None
    ):
        self.store = store
        self.blob_storage = blob_storage
        self.embedding_service = embedding_service
        self.config = config or ProcessorConfig()
        self.monitor = monitor or ProcessingMonitor()
        self.extractor = TextExtractor()

    async def process_document(self, request: ProcessDocumentRequest) -> DocumentProcessingResult:
        """Run the full ingestion pipeline for one document."""
        try:
            InputValidator.validate_user_id(request.user_id)
            InputValidator.validate_document_source(
                request.raw_content, request.file_path, request.file_type
            )
        except ValueError as e:
            raise DocumentProcessingError(f"Invalid document request: {str(e)}", cause=e) from e

        record = await self._create_record(request)
        document_id = record.id
        await self.monitor.start_task(document_id)

        stage = ProcessingStage.EXTRACTION
        try:
            text = await self._extract(request, document_id)

            stage = ProcessingStage.CHUNKING
            chunker = self._build_chunker(request)
            chunks = chunker.chunk_document(text, document_id)

            stage = ProcessingStage.STORAGE
            stored = await self._store_chunks(chunks, document_id)
            await self._merge_metadata(document_id, {
                "chunking": {
                    "chunk_count": len(stored),
                    "strategy": chunker.config.strategy,
                    "chunk_size": chunker.config.chunk_size,
                    "chunk_overlap": chunker.config.chunk_overlap,
                    "completed_at": datetime.now().isoformat(),
                }
            })

            if stored:
                stage = ProcessingStage.EMBEDDING
                embedded = await self.embedding_service.generate_embeddings(stored)
                embedded_count = sum(1 for chunk in embedded if chunk.embedding)
                await self._merge_metadata(document_id, {
                    "embedding": {
                        "embedded_count": embedded_count,
                        "missing_count": len(stored) - embedded_count,
                        "fully_embedded": embedded_count == len(stored),
                        "model": self.embedding_service.config.model_name,
                        "completed_at": datetime.now().isoformat(),
                    }
                })
                if embedded_count < len(stored):
                    logger.warning(
                        f"Document {document_id} has {len(stored) - embedded_count} "
                        f"chunks without embeddings"
                    )
            else:
                logger.info(f"Document {document_id} produced no chunks")

            stage = ProcessingStage.STORAGE
            await self.store.update_document_status(document_id, DocumentStatus.PROCESSED)

        except Exception as e:
            logger.error(f"Processing document {document_id} failed at {stage.value}: {str(e)}")
            await self._record_failure(document_id, str(e))
            await self.monitor.end_task(document_id, DocumentStatus.ERROR.value)
            raise DocumentProcessingError(
                f"Document processing failed during {stage.value}: {str(e)}",
                stage=stage,
                document_id=document_id,
                cause=e
            ) from e

        await self.monitor.end_task(document_id, DocumentStatus.PROCESSED.value)
        return DocumentProcessingResult(
            document_id=document_id,
            status=DocumentStatus.PROCESSED,
            chunk_count=len(stored)
        )

    async def get_status(self, document_id: str, user_id: str) -> DocumentStatusReport:
        """Status polling for a document owned by ``user_id``."""
        try:
            record = await self.store.get_document(document_id, user_id)
        except Exception as e:
            raise DocumentProcessingError(
                f"Failed to read document status: {str(e)}",
                stage=ProcessingStage.STORAGE,
                document_id=document_id,
                cause=e
            ) from e
        if record is None:
            raise DocumentProcessingError(
                f"Document not found: {document_id}", document_id=document_id
            )
        return DocumentStatusReport(
            document_id=record.id,
            status=record.status,
            error_message=record.error_message
        )

    async def _create_record(self, request: ProcessDocumentRequest) -> DocumentRecord:
        record = DocumentRecord(
            id=str(uuid.uuid4()),
            title=request.title,
            user_id=request.user_id,
            status=DocumentStatus.PROCESSING,
            file_path=request.file_path,
            file_type=request.file_type,
            source_type=request.source_type,
            source_id=request.source_id,
            source_created_at=request.source_created_at,
            source_updated_at=request.source_updated_at,
            metadata={**request.metadata, "processing_started": datetime.now().isoformat()},
        )
        try:
            created = await self.store.create_document(record)
        except Exception as e:
            raise DocumentProcessingError(
                f"Failed to create document record: {str(e)}",
                stage=ProcessingStage.STORAGE,
                cause=e
            ) from e
        logger.info(f"Created document {created.id} for user {created.user_id}")
        return created

    async def _extract(self, request: ProcessDocumentRequest, document_id: str) -> str:
        if request.raw_content is not None:
            text = request.raw_content
            stats = {
                "source": "raw_content",
                "word_count": word_count(text),
                "char_count": len(text),
                "content_hash": content_hash(text),
            }
        else:
            data = await self.blob_storage.download(request.file_path)
            filename = request.title or os.path.basename(request.file_path)
            result = self.extractor.extract_text(data, filename, request.file_type)
            text = result.text
            stats = {
                "source": "file",
                "file_type": result.metadata.get("file_type"),
                "word_count": result.metadata["word_count"],
                "char_count": result.metadata["char_count"],
                "content_hash": result.metadata["content_hash"],
            }
            if "page_count" in result.metadata:
                stats["page_count"] = result.metadata["page_count"]

        stats["completed_at"] = datetime.now().isoformat()
        await self._merge_metadata(document_id, {"extraction": stats})
        return sanitize_text(text)

    def _build_chunker(self, request: ProcessDocumentRequest) -> DocumentChunker:
        overrides: Dict[str, Any] = {}
        if request.chunk_size is not None:
            overrides["chunk_size"] = request.chunk_size
        if request.chunk_overlap is not None:
            overrides["chunk_overlap"] = request.chunk_overlap
        if request.strategy is not None:
            overrides["strategy"] = request.strategy
        config: ChunkerConfig = replace(self.config.chunker_config, **overrides)
        return DocumentChunker(config)

    async def _store_chunks(self, chunks: List[DocumentChunk], document_id: str) -> List[DocumentChunk]:
        valid = [
            chunk for chunk in chunks
            if chunk.content and chunk.content.strip() and chunk.document_id == document_id
        ]
        if len(valid) < len(chunks):
            logger.warning(f"Skipped {len(chunks) - len(valid)} invalid chunks for {document_id}")

        stored: List[DocumentChunk] = []
        batch_size = self.config.storage_batch_size
        for i in range(0, len(valid), batch_size):
            batch = valid[i:i + batch_size]
            stored.extend(await self.store.insert_chunks(batch))
            logger.debug(f"Stored chunk batch {i // batch_size + 1} for {document_id}")
        return stored

    async def _merge_metadata(self, document_id: str, updates: Dict[str, Any]):
        """Read-merge-write; failures are logged and never abort processing."""
        try:
            current = await self.store.get_document_metadata(document_id)
            await self.store.update_document_metadata(document_id, {**current, **updates})
        except Exception as e:
            logger.error(f"Failed to update metadata for {document_id}: {str(e)}")

    async def _record_failure(self, document_id: str, message: str):
        try:
            await self.store.update_document_status(document_id, DocumentStatus.ERROR, message)
        except Exception as e:
            logger.error(f"Failed to record error status for {document_id}: {str(e)}")
