"""
Search component for similarity search functionality.
"""

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from ...models.schemas import SearchOptions, SearchResult, TaskType
from ...services.embeddings import EmbeddingService
from ...services.storage import DocumentStore
from ...utils.errors import VectorSearchError, handle_exceptions
from ...utils.validation import InputValidator

logger = logging.getLogger(__name__)


def _matches_metadata(result: SearchResult, filters: Dict[str, Any]) -> bool:
    return all(result.metadata.get(key) == value for key, value in filters.items())


class VectorSearchService:
    """Embeds a query and ranks stored chunks by similarity."""

    def __init__(self, embedding_service: EmbeddingService, store: DocumentStore):
        self.embedding_service = embedding_service
        self.store = store

    @handle_exceptions(VectorSearchError, "Vector search failed")
    async def search(self, query: str, options: SearchOptions) -> List[SearchResult]:
        """Return the caller's matches above the threshold, best first, after post-filtering."""
        try:
            InputValidator.validate_search_params(query, options.limit, options.threshold)
            InputValidator.validate_user_id(options.user_id)
        except ValueError as e:
            raise VectorSearchError(str(e), cause=e) from e

        query_embedding = await self._embed_query(query)

        rows = await self.store.match_documents(
            query_embedding=query_embedding,
            match_threshold=options.threshold,
            match_count=options.limit,
            user_id=options.user_id,
            source_types=options.source_types
        )
        try:
            results = [SearchResult.model_validate(row) for row in rows or []]
        except ValidationError as e:
            raise VectorSearchError(f"Malformed similarity search row: {str(e)}", cause=e) from e

        results = self._post_filter(results, options)
        logger.info(f"Found {len(results)} results for query: {query[:50]}...")
        return results

    async def _embed_query(self, query: str) -> List[float]:
        try:
            return await self.embedding_service.generate_embedding_for_text(
                query, TaskType.RETRIEVAL_QUERY
            )
        except Exception as e:
            raise VectorSearchError(
                f"Failed to generate query embedding: {str(e)}", cause=e
            ) from e

    @staticmethod
    def _post_filter(results: List[SearchResult], options: SearchOptions) -> List[SearchResult]:
        results = [r for r in results if r.user_id == options.user_id]
        if options.document_type:
            results = [r for r in results if r.document_type == options.document_type]
        if options.metadata_filters:
            results = [r for r in results if _matches_metadata(r, options.metadata_filters)]
        if options.exclude_document_ids:
            excluded = set(options.exclude_document_ids)
            results = [r for r in results if r.document_id not in excluded]
        return results

    @staticmethod
    def format_results(results: List[SearchResult]) -> str:
        """Format search results for display."""
        if not results:
            return "No matching documents found."

        formatted = ["Search Results:"]
        for i, result in enumerate(results, 1):
            formatted.extend([
                f"\n{i}. Score: {result.similarity:.3f}",
                f"Source: {result.title or result.document_id} (Chunk: {result.chunk_index})",
                f"Content: {result.content[:200]}..."
            ])
        return "\n".join(formatted)
