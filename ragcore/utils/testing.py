"""
In-memory collaborators for testing the pipelines without Postgres or
provider APIs.
"""

import hashlib
import logging
import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..models.schemas import (
    DocumentChunk, DocumentRecord, DocumentStatus, EmbeddingRecord,
    GenerationOptions, LLMResponse, LLMUsage, SourceType, TaskType
)
from ..services.blob_storage import BlobStorage
from ..services.embeddings import EmbeddingProvider
from ..services.llm import LLMProvider
from ..services.storage import DocumentStore
from .errors import BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed document store with cosine similarity search."""

    def __init__(self):
        self.documents: Dict[str, DocumentRecord] = {}
        self.chunks: Dict[str, DocumentChunk] = {}
        self.embeddings: Dict[str, EmbeddingRecord] = {}
        self.status_history: Dict[str, List[DocumentStatus]] = {}
        self.insert_calls = 0
        self.fail_insert_on_call: Optional[int] = None
        self.fail_embedding_lookup = False
        self.fail_store_embedding = False

    async def create_document(self, record: DocumentRecord) -> DocumentRecord:
        stored = record.model_copy(update={
            "id": record.id or str(uuid.uuid4()),
            "created_at": record.created_at or datetime.now(),
        })
        self.documents[stored.id] = stored
        self.status_history[stored.id] = [stored.status]
        return stored

    async def get_document(self, document_id: str, user_id: str) -> Optional[DocumentRecord]:
        record = self.documents.get(document_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    async def update_document_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None
    ) -> None:
        record = self.documents[document_id]
        self.documents[document_id] = record.model_copy(update={
            "status": DocumentStatus(status),
            "error_message": error_message,
            "updated_at": datetime.now(),
        })
        self.status_history[document_id].append(DocumentStatus(status))

    async def get_document_metadata(self, document_id: str) -> Dict[str, Any]:
        return dict(self.documents[document_id].metadata)

    async def update_document_metadata(self, document_id: str, metadata: Dict[str, Any]) -> None:
        record = self.documents[document_id]
        self.documents[document_id] = record.model_copy(update={"metadata": dict(metadata)})

    async def insert_chunks(self, chunks: List[DocumentChunk]) -> List[DocumentChunk]:
        self.insert_calls += 1
        if self.fail_insert_on_call == self.insert_calls:
            raise StorageError(f"Simulated insert failure on batch {self.insert_calls}")
        stored = []
        for chunk in chunks:
            if not chunk.content.strip():
                raise StorageError("chunks_content_not_empty violated")
            if chunk.document_id not in self.documents:
                raise StorageError(f"Unknown document {chunk.document_id}")
            saved = chunk.model_copy(update={"id": str(uuid.uuid4()), "created_at": datetime.now()})
            self.chunks[saved.id] = saved
            stored.append(saved)
        return stored

    def chunks_for(self, document_id: str) -> List[DocumentChunk]:
        return sorted(
            (c for c in self.chunks.values() if c.document_id == document_id),
            key=lambda c: c.chunk_index
        )

    async def get_embeddings(
        self,
        chunk_ids: Sequence[str],
        model: Optional[str] = None
    ) -> Dict[str, EmbeddingRecord]:
        if self.fail_embedding_lookup:
            raise StorageError("Simulated embedding lookup failure")
        return {
            chunk_id: self.embeddings[chunk_id]
            for chunk_id in chunk_ids
            if chunk_id in self.embeddings
            and (model is None or self.embeddings[chunk_id].model == model)
        }

    async def store_embedding(self, chunk_id: str, embedding: List[float], model: str) -> EmbeddingRecord:
        if self.fail_store_embedding:
            raise StorageError("Simulated embedding write failure")
        record = EmbeddingRecord(
            id=str(uuid.uuid4()), chunk_id=chunk_id, embedding=embedding, model=model,
            created_at=datetime.now()
        )
        self.embeddings[chunk_id] = record
        return record

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
        query = np.asarray(query_embedding, dtype=np.float32)
        rows = []
        for chunk_id, record in self.embeddings.items():
            chunk = self.chunks.get(chunk_id)
            if chunk is None:
                continue
            document = self.documents[chunk.document_id]
            if document.user_id != user_id:
                continue
            if source_types and document.source_type not in source_types:
                continue

            vector = np.asarray(record.embedding, dtype=np.float32)
            norm = float(np.linalg.norm(query) * np.linalg.norm(vector))
            similarity = float(np.dot(query, vector) / norm) if norm else 0.0
            if similarity <= match_threshold:
                continue
            rows.append({
                "id": chunk.id,
                "document_id": chunk.document_id,
                "content": chunk.content,
                "chunk_index": chunk.chunk_index,
                "metadata": chunk.metadata,
                "created_at": chunk.created_at,
                "document_title": document.title,
                "document_type": document.source_type.value,
                "user_id": document.user_id,
                "similarity": similarity,
            })
        rows.sort(key=lambda row: row["similarity"], reverse=True)
        return rows[:match_count]


class InMemoryBlobStorage(BlobStorage):
    def __init__(self, objects: Optional[Dict[str, bytes]] = None):
        self.objects = dict(objects or {})

    async def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise BlobNotFoundError(path)
        return self.objects[path]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic bag-of-words hashing embeddings.

    Texts sharing words get positive cosine similarity, so search results
    are meaningful without a real model.
    """

    def __init__(
        self,
        model_name: str = "text-embedding-004",
        dimension: int = 768,
        fail_times: int = 0,
        fail_on: Optional[str] = None
    ):
        self.model_name = model_name
        self.dimension = dimension
        self.fail_times = fail_times
        self.fail_on = fail_on
        self.calls: List[str] = []
        self.task_types: List[TaskType] = []

    async def embed(self, text: str, task_type: TaskType) -> List[float]:
        self.calls.append(text)
        self.task_types.append(task_type)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("Simulated provider outage")
        if self.fail_on and self.fail_on in text:
            raise ValueError(f"Simulated rejection of text containing {self.fail_on!r}")

        vector = np.zeros(self.dimension, dtype=np.float32)
        for word in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "little") % self.dimension] += 1.0
        norm = np.linalg.norm(vector)
        if norm:
            vector /= norm
        return vector.tolist()


class WordTokenCounter:
    """Counts whitespace-separated words as tokens."""

    async def count_tokens(self, text: str) -> int:
        return len((text or "").split())


class FakeLLMProvider(WordTokenCounter, LLMProvider):
    """Returns canned responses and records every prompt."""

    def __init__(self, response_text: str = "Answer.", fail_with: Optional[Exception] = None):
        self.response_text = response_text
        self.fail_with = fail_with
        self.prompts: List[str] = []
        self.system_messages: List[Optional[str]] = []
        self.options: List[GenerationOptions] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        system_message: Optional[str] = None
    ) -> LLMResponse:
        self.prompts.append(prompt)
        self.system_messages.append(system_message)
        self.options.append(options)
        if self.fail_with is not None:
            raise self.fail_with
        prompt_tokens = await self.count_tokens(prompt)
        completion_tokens = await self.count_tokens(self.response_text)
        return LLMResponse(
            text=self.response_text,
            usage=LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            model="fake-llm",
        )
