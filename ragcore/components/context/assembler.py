"""
Context assembly: turns ranked search results into a token-budgeted,
citation-ready context string.

Steps: prioritize, de-overlap adjacent chunks of the same document, pack
into ``max_tokens - reserved_tokens``, pick one representative source per
document, and render as markdown, JSON or plain text.
"""

import json
import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from ...config.query import AssemblyConfig
from ...models.schemas import AssembledContext, ContextSource, SearchResult
from ...services.llm import LLMProvider
from ...utils.errors import ContextAssemblerError, handle_exceptions

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Document"
UNKNOWN_TYPE = "Unknown Type"


def find_overlap_size(previous: str, current: str) -> int:
    """Length of the longest suffix of ``previous`` that prefixes ``current``."""
    for size in range(min(len(previous), len(current)), 0, -1):
        if previous[-size:] == current[:size]:
            return size
    return 0


def _timestamp(result: SearchResult) -> float:
    return result.created_at.timestamp() if result.created_at else 0.0


def _group_by_document(results: List[SearchResult]) -> Dict[str, List[SearchResult]]:
    """Group preserving first-seen document order, each group in chunk order."""
    groups: Dict[str, List[SearchResult]] = {}
    for result in results:
        groups.setdefault(result.document_id, []).append(result)
    for group in groups.values():
        group.sort(key=lambda r: r.chunk_index)
    return groups


class ContextAssembler:
    """Packs search results into a context block for the LLM."""

    def __init__(self, token_counter: LLMProvider, config: Optional[AssemblyConfig] = None):
        self.token_counter = token_counter
        self.config = config or AssemblyConfig()

    @handle_exceptions(ContextAssemblerError, "Failed to assemble context")
    async def assemble_context(self, search_results: List[SearchResult], query: str) -> AssembledContext:
        if not search_results:
            return AssembledContext(context="")

        prioritized = self.prioritize(search_results)
        candidates = self.remove_overlaps(prioritized)
        budget = self.config.token_budget

        selected = await self._pack(candidates, budget)
        context, selected = await self._render_within_budget(selected, budget)
        token_count = await self.token_counter.count_tokens(context) if context else 0

        logger.info(
            f"Assembled context for query '{query[:50]}': {len(selected)}/{len(candidates)} "
            f"chunks, {token_count} tokens"
        )
        return AssembledContext(
            context=context,
            sources=self._collect_sources(selected),
            token_count=token_count,
            total_chunks=len(candidates),
            used_chunks=len(selected),
            chunks=selected,
        )

    def prioritize(self, results: List[SearchResult]) -> List[SearchResult]:
        strategy = self.config.prioritize_strategy
        if strategy == "recency":
            return sorted(results, key=_timestamp, reverse=True)

        if strategy == "combined":
            times = [_timestamp(r) for r in results]
            oldest = min(times)
            time_range = (max(times) - oldest) or 1

            def score(result: SearchResult) -> float:
                recency = (_timestamp(result) - oldest) / time_range
                return 0.7 * result.similarity + 0.3 * recency

            return sorted(results, key=score, reverse=True)

        return sorted(results, key=lambda r: r.similarity, reverse=True)

    def remove_overlaps(self, results: List[SearchResult]) -> List[SearchResult]:
        """Apply the configured overlap strategy, keeping the priority order."""
        strategy = self.config.chunk_overlap_strategy
        if strategy == "keep":
            return list(results)

        position = {r.id: i for i, r in enumerate(results)}
        kept: List[SearchResult] = []

        for group in _group_by_document(results).values():
            kept.append(group[0])
            previous = group[0]
            for current in group[1:]:
                adjacent = current.chunk_index - previous.chunk_index == 1
                if strategy == "remove":
                    if not adjacent:
                        kept.append(current)
                        previous = current
                    continue

                # truncate; overlap is measured against the untrimmed neighbour
                emitted = current
                if adjacent:
                    overlap = find_overlap_size(previous.content, current.content)
                    if overlap:
                        remainder = current.content[overlap:]
                        if not remainder.strip():
                            previous = current
                            continue
                        emitted = current.model_copy(update={"content": remainder})
                kept.append(emitted)
                previous = current

        return sorted(kept, key=lambda r: position[r.id])

    async def _count(self, text: str) -> int:
        return await self.token_counter.count_tokens(text)

    async def _pack(self, candidates: List[SearchResult], budget: int) -> List[SearchResult]:
        selected: List[SearchResult] = []
        used = 0
        for chunk in candidates:
            tokens = await self._count(chunk.content)
            if used + tokens > budget:
                if not selected:
                    truncated = await self.truncate_to_fit(chunk.content, budget)
                    if truncated.strip():
                        selected.append(chunk.model_copy(update={"content": truncated}))
                break
            selected.append(chunk)
            used += tokens
        return selected

    async def truncate_to_fit(self, content: str, max_tokens: int) -> str:
        """Shorten ``content`` until it fits, preferring to end on a sentence."""
        while content:
            tokens = await self._count(content)
            if tokens <= max_tokens:
                return content

            tokens_per_char = tokens / len(content)
            keep = math.floor(max_tokens / tokens_per_char) - 10
            if keep <= 0:
                return ""
            keep = min(keep, len(content) - 1)

            truncated = content[:keep]
            last_period = truncated.rfind('.')
            if last_period > keep * 0.7:
                truncated = truncated[:last_period + 1]
            content = truncated
        return content

    async def _render_within_budget(self, selected: List[SearchResult], budget: int):
        """Format the selection, shrinking it until the rendered text fits."""
        selected = list(selected)
        while selected:
            context = self.format_context(selected)
            tokens = await self._count(context)
            if tokens <= budget:
                return context, selected

            if len(selected) > 1:
                selected.pop()
                continue

            only = selected[0]
            overhead = tokens - await self._count(only.content)
            truncated = await self.truncate_to_fit(only.content, budget - overhead)
            if truncated == only.content:
                # Rendered tokens are not additive for this tokenizer
                truncated = await self.truncate_to_fit(
                    only.content, await self._count(only.content) - 1
                )
            if not truncated.strip():
                selected = []
                break
            selected = [only.model_copy(update={"content": truncated})]
        return "", selected

    @staticmethod
    def _collect_sources(selected: List[SearchResult]) -> List[ContextSource]:
        sources: Dict[str, ContextSource] = {}
        for chunk in selected:
            if chunk.document_id in sources:
                continue
            sources[chunk.document_id] = ContextSource(
                index=len(sources) + 1,
                document_id=chunk.document_id,
                chunk_id=chunk.id,
                title=chunk.title or UNKNOWN_TITLE,
                document_type=chunk.document_type,
                similarity=chunk.similarity,
            )
        return list(sources.values())

    def format_context(self, chunks: List[SearchResult]) -> str:
        groups = _group_by_document(chunks)
        fmt = self.config.format_type

        if fmt == "json":
            return json.dumps([
                {
                    "document_id": document_id,
                    "title": group[0].title or UNKNOWN_TITLE,
                    "type": group[0].document_type or UNKNOWN_TYPE,
                    "content": "\n".join(c.content for c in group),
                    "metadata": group[0].metadata if self.config.include_metadata else None,
                }
                for document_id, group in groups.items()
            ], indent=2, default=str)

        parts = []
        for index, group in enumerate(groups.values(), 1):
            title = group[0].title or UNKNOWN_TITLE
            content = "\n".join(c.content for c in group)

            if fmt == "markdown":
                section = f"## [{index}] {title} ({group[0].document_type or UNKNOWN_TYPE})\n\n{content}\n\n"
                metadata = group[0].metadata
                if self.config.include_metadata and metadata:
                    section += "**Metadata:**\n\n"
                    section += "".join(f"- {key}: {value}\n" for key, value in metadata.items())
                    section += "\n"
            else:
                section = f"[{index}] {title}\n\n{content}\n\n"
            parts.append(section)

        separator = "---\n\n" if fmt == "markdown" else "----------\n\n"
        return separator.join(parts)
