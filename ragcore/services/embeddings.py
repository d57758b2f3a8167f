"""
Embeddings service for generating vector embeddings.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from langchain_openai import OpenAIEmbeddings

from ..config.processor import EmbeddingConfig
from ..models.schemas import ChunkWithEmbedding, DocumentChunk, EmbeddingRecord, TaskType
from ..utils.errors import EmbeddingError
from ..utils.rate_limiter import BatchThrottle, RetryPolicy
from ..utils.text import collapse_blank_lines
from .storage import DocumentStore

logger = logging.getLogger(__name__)

class EmbeddingProvider(ABC):
    """External embedding model."""

    model_name: str

    @abstractmethod
    async def embed(self, text: str, task_type: TaskType) -> List[float]:
        ...


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI embeddings through langchain."""

    def __init__(self, model_name: str = "text-embedding-ada-002", api_key: Optional[str] = None):
        self.model_name = model_name
        # Retries are owned by RetryPolicy
        self.client = OpenAIEmbeddings(
            model=model_name,
            openai_api_key=api_key,
            max_retries=0
        )

    async def embed(self, text: str, task_type: TaskType) -> List[float]:
        if task_type == TaskType.RETRIEVAL_QUERY:
            return await self.client.aembed_query(text)
        vectors = await self.client.aembed_documents([text])
        return vectors[0]


class EmbeddingService:
    """Generates, caches and persists chunk embeddings."""

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: DocumentStore,
        config: Optional[EmbeddingConfig] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self.provider = provider
        self.store = store
        self.config = config or EmbeddingConfig(model_name=provider.model_name)
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def dimension(self) -> int:
        return self.config.dimension

    async def generate_embedding_for_text(
        self,
        text: str,
        task_type: TaskType = TaskType.RETRIEVAL_DOCUMENT,
        chunk_id: Optional[str] = None
    ) -> List[float]:
        """Embed one text; blank input yields a zero vector without a provider call."""
        cleaned = collapse_blank_lines(text)
        if not cleaned:
            logger.warning("Attempted to embed empty text, returning zero vector")
            return [0.0] * self.dimension

        try:
            vector = await self.retry_policy.run(self.provider.embed, cleaned, task_type)
        except Exception as e:
            raise EmbeddingError(
                f"Failed to generate embedding after {self.retry_policy.max_attempts} "
                f"attempts: {str(e)}",
                chunk_id=chunk_id,
                cause=e
            ) from e

        if len(vector) != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension mismatch for {self.config.model_name}: "
                f"expected {self.dimension}, got {len(vector)}",
                chunk_id=chunk_id
            )
        return list(vector)

    async def generate_embeddings(self, chunks: List[DocumentChunk]) -> List[ChunkWithEmbedding]:
        """Embed chunks in sequential batches with a fixed delay between batches.

        A chunk whose embedding fails is returned without one.
        """
        if not chunks:
            return []

        throttle = BatchThrottle(self.retry_policy.config.batch_delay)
        batch_size = self.config.batch_size
        results: List[ChunkWithEmbedding] = []

        for i in range(0, len(chunks), batch_size):
            await throttle.wait()
            batch = chunks[i:i + batch_size]
            results.extend(await self._process_batch(batch))
            logger.info(
                f"Processed embedding batch {i // batch_size + 1} "
                f"({min(i + batch_size, len(chunks))}/{len(chunks)} chunks)"
            )
        return results

    async def _lookup_cached(self, batch: List[DocumentChunk]) -> Dict[str, EmbeddingRecord]:
        if not self.config.cache_enabled:
            return {}
        chunk_ids = [chunk.id for chunk in batch if chunk.id]
        try:
            return await self.store.get_embeddings(chunk_ids, model=self.config.model_name)
        except Exception as e:
            logger.warning(f"Embedding cache lookup failed, recomputing batch: {str(e)}")
            return {}

    async def _process_batch(self, batch: List[DocumentChunk]) -> List[ChunkWithEmbedding]:
        cached = await self._lookup_cached(batch)
        results = []

        for chunk in batch:
            base = chunk.model_dump()
            if chunk.id in cached:
                results.append(ChunkWithEmbedding(**{**base, "embedding": cached[chunk.id].embedding}))
                continue

            try:
                vector = await self.generate_embedding_for_text(
                    chunk.content, TaskType.RETRIEVAL_DOCUMENT, chunk_id=chunk.id
                )
                await self.store.store_embedding(chunk.id, vector, self.config.model_name)
                results.append(ChunkWithEmbedding(**{**base, "embedding": vector}))
            except Exception as e:
                logger.warning(f"Chunk {chunk.id} left without embedding: {str(e)}")
                results.append(ChunkWithEmbedding(**{**base, "embedding": None}))

        return results
