"""
Post-processing of generated answers: strips the trailing
``Primary Sources:`` line and maps the ids it names onto the chunks that
were used as context.
"""

import logging
from typing import List, Optional, Tuple

from ...models.schemas import DisplaySource, ProcessedResponse, SearchResult
from ...utils.text import truncate_text
from ..prompts.formatter import PRIMARY_SOURCES_PREFIX

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 100


def split_primary_sources(text: str) -> Tuple[str, Optional[List[str]]]:
    """Remove the final ``Primary Sources:`` line.

    Returns the remaining text and the listed ids, or ``None`` when the line
    is absent. ``Primary Sources: None`` yields an empty list.
    """
    lines = text.rstrip().split("\n")
    if not lines or not lines[-1].strip().startswith(PRIMARY_SOURCES_PREFIX):
        return text.strip(), None

    listed = lines[-1].strip()[len(PRIMARY_SOURCES_PREFIX):].strip().rstrip(".;")
    body = "\n".join(lines[:-1]).strip()
    if not listed or listed.lower() == "none":
        return body, []

    ids = [part.strip().strip("[]\"'`.;") for part in listed.split(",")]
    return body, [i for i in ids if i]


class ResponseProcessor:
    """Turns raw LLM output into display text plus cited sources."""

    def process_response(self, llm_text: str, source_chunks: List[SearchResult]) -> ProcessedResponse:
        body, ids = split_primary_sources(llm_text or "")
        if not ids:
            if ids is None:
                logger.debug("Response has no Primary Sources line")
            return ProcessedResponse(response_text=body, sources=[])

        sources: List[DisplaySource] = []
        seen = set()
        for source_id in ids:
            chunk = next(
                (c for c in source_chunks if c.document_id.startswith(source_id)), None
            )
            if chunk is None:
                logger.warning(f"Response cited unknown source id: {source_id}")
                continue
            if chunk.document_id in seen:
                continue
            seen.add(chunk.document_id)
            sources.append(self._to_display(chunk))

        return ProcessedResponse(response_text=body, sources=sources)

    @staticmethod
    def _to_display(chunk: SearchResult) -> DisplaySource:
        name = chunk.title or f"Document {chunk.document_id[:8]}"
        return DisplaySource(
            document_id=chunk.document_id,
            chunk_id=chunk.id,
            title=f"{name} (Chunk {chunk.chunk_index + 1})",
            snippet=truncate_text(chunk.content, SNIPPET_LENGTH),
            similarity=chunk.similarity,
        )
