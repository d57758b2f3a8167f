"""
Query processing: cache lookup, search, context assembly, prompt formatting
and generation, with per-stage timings.

Every stage failure surfaces as a ``QueryProcessingError`` whose ``stage``
names the step that failed. Query failures are never persisted.
"""

import asyncio
import logging
from typing import Awaitable, List, Optional, TypeVar

from ...config.query import QueryConfig
from ...models.schemas import (
    AssembledContext, FormattedPrompt, GenerationOptions, LLMResponse,
    ProcessedResponse, QueryDebugInfo, QueryMetadata, QueryResult,
    SearchOptions, SearchResult
)
from ...services.llm import LLMProvider
from ...utils.cache import QueryCache
from ...utils.errors import QueryProcessingError, QueryStage, handle_exceptions
from ...utils.monitoring import StageTimer
from ...utils.validation import InputValidator
from ..context.assembler import ContextAssembler
from ..prompts.formatter import PromptFormatter
from ..response.processor import ResponseProcessor
from ..search.searcher import VectorSearchService

logger = logging.getLogger(__name__)

T = TypeVar('T')


class QueryProcessor:
    """Top-level question answering pipeline."""

    def __init__(
        self,
        search_service: VectorSearchService,
        assembler: ContextAssembler,
        formatter: PromptFormatter,
        llm: LLMProvider,
        config: Optional[QueryConfig] = None,
        response_processor: Optional[ResponseProcessor] = None,
        cache: Optional[QueryCache[QueryResult]] = None
    ):
        self.search_service = search_service
        self.assembler = assembler
        self.formatter = formatter
        self.llm = llm
        self.config = config or QueryConfig()
        self.response_processor = response_processor or ResponseProcessor()
        if cache is None and self.config.cache_enabled:
            cache = QueryCache(
                ttl=self.config.cache_ttl,
                max_entries=self.config.cache_max_entries,
                prune_to=self.config.cache_prune_to
            )
        self.cache = cache if self.config.cache_enabled else None

    async def process_query(self, query: str, user_id: str) -> QueryResult:
        """Answer a question from the documents owned by user_id."""
        try:
            InputValidator.validate_user_id(user_id)
        except ValueError as e:
            raise QueryProcessingError(str(e), stage=QueryStage.SEARCH, cause=e) from e

        timer = StageTimer()
        cache_key = QueryCache.make_key(query, user_id)

        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"Cache hit for query: {query[:50]}")
                metadata = cached.metadata.model_copy(
                    update={"cache_hit": True, "processing_time_ms": timer.elapsed_ms()}
                )
                return cached.model_copy(update={"metadata": metadata}, deep=True)

        with timer.stage(QueryStage.SEARCH.value):
            results = await self._search(query, user_id)
        with timer.stage(QueryStage.ASSEMBLY.value):
            context = await self._assemble(results, query)
        with timer.stage(QueryStage.FORMATTING.value):
            prompt = self._format(query, context)
        with timer.stage(QueryStage.GENERATION.value):
            response = await self._generate(prompt)

        processed = self._process_response(response, context.chunks)

        result = QueryResult(
            query=query,
            content=processed.response_text,
            sources=prompt.sources,
            citations=processed.sources,
            metadata=QueryMetadata(
                timings=dict(timer.timings),
                processing_time_ms=timer.elapsed_ms(),
                usage=response.usage,
                context_tokens=context.token_count,
                total_chunks=context.total_chunks,
                used_chunks=context.used_chunks,
                model=response.model,
                cache_hit=False,
            ),
        )
        if self.config.debug_mode:
            result.debug = QueryDebugInfo(
                search_results=results,
                assembled_context=context,
                formatted_prompt=prompt,
                raw_response=response,
            )

        if self.cache is not None:
            self.cache.set(cache_key, result.model_copy(deep=True))

        logger.info(
            f"Answered query in {result.metadata.processing_time_ms:.0f}ms "
            f"({context.used_chunks} chunks, {response.usage.total_tokens} tokens)"
        )
        return result

    def clear_cache(self):
        if self.cache is not None:
            self.cache.clear()

    async def _with_timeout(self, awaitable: Awaitable[T]) -> T:
        if self.config.stage_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.config.stage_timeout)

    @handle_exceptions(QueryProcessingError, "Vector search failed", stage=QueryStage.SEARCH)
    async def _search(self, query: str, user_id: str) -> List[SearchResult]:
        options = SearchOptions(
            limit=self.config.search.limit,
            threshold=self.config.search.threshold,
            user_id=user_id
        )
        return await self._with_timeout(self.search_service.search(query, options))

    @handle_exceptions(QueryProcessingError, "Context assembly failed", stage=QueryStage.ASSEMBLY)
    async def _assemble(self, results: List[SearchResult], query: str) -> AssembledContext:
        return await self._with_timeout(self.assembler.assemble_context(results, query))

    @handle_exceptions(QueryProcessingError, "Prompt formatting failed", stage=QueryStage.FORMATTING)
    def _format(self, query: str, context: AssembledContext) -> FormattedPrompt:
        return self.formatter.format_prompt(query, context)

    @handle_exceptions(QueryProcessingError, "LLM generation failed", stage=QueryStage.GENERATION)
    async def _generate(self, prompt: FormattedPrompt) -> LLMResponse:
        options = GenerationOptions(
            temperature=self.config.llm.temperature,
            max_tokens=self.config.llm.max_tokens
        )
        return await self._with_timeout(
            self.llm.generate(prompt.user_message, options, system_message=prompt.system_message)
        )

    @handle_exceptions(QueryProcessingError, "Response processing failed")
    def _process_response(self, response: LLMResponse, chunks: List[SearchResult]) -> ProcessedResponse:
        return self.response_processor.process_response(response.text, chunks)
