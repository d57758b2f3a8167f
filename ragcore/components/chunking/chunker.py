"""
Document chunking strategies.

Three strategies are available:

- ``fixed``: a sliding window of ``chunk_size`` characters over the cleaned
  text. With ``preserve_sentences`` the right edge of each window is pulled
  back to the last sentence end, else the last paragraph break, else the last
  space past the window midpoint.
- ``paragraph``: whole paragraphs are packed into a buffer until the next one
  would overflow it.
- ``semantic``: like ``paragraph``, but packs sentence-like units split on
  ``semantic_unit_separator`` and never starts an overlap mid-unit.

Oversized paragraph or semantic buffers fall back to the fixed strategy.
"""

import hashlib
import logging
import re
from typing import Any, Dict, List, Optional

from ...config.processor import ChunkerConfig
from ...models.schemas import DocumentChunk
from ...utils.errors import ChunkingError
from ...utils.text import normalize_whitespace, word_count

logger = logging.getLogger(__name__)

STRATEGIES = ("fixed", "paragraph", "semantic")

_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")


def find_last_sentence_boundary(text: str) -> int:
    """Return the cut position inside ``text`` or -1 for a raw cut."""
    last = None
    for last in _SENTENCE_END.finditer(text):
        pass
    if last is not None:
        return last.start() + 1

    paragraph_break = text.rfind('\n\n')
    if paragraph_break > 0:
        return paragraph_break

    last_space = text.rfind(' ')
    if last_space > len(text) / 2:
        return last_space

    return -1


class DocumentChunker:
    """Splits document text into ordered chunks."""

    def __init__(self, config: Optional[ChunkerConfig] = None):
        self.config = config or ChunkerConfig()
        self._validate_config()
        separator = self.config.semantic_unit_separator or ".!?"
        self._unit_pattern = re.compile(f"([{re.escape(separator)}]\\s+)")
        self._paragraph_pattern = re.compile(self.config.paragraph_separator)

    def _validate_config(self):
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        if size <= 0:
            raise ChunkingError(f"chunk_size must be positive, got {size}")
        if overlap < 0:
            raise ChunkingError(f"chunk_overlap cannot be negative, got {overlap}")
        if overlap >= size:
            raise ChunkingError(
                f"chunk_overlap ({overlap}) must be smaller than chunk_size ({size})"
            )
        if self.config.strategy not in STRATEGIES:
            raise ChunkingError(f"Unknown chunking strategy: {self.config.strategy}")

    def chunk_document(
        self,
        text: str,
        document_id: Optional[str],
        metadata: Optional[Dict[str, Any]] = None
    ) -> List[DocumentChunk]:
        """Split ``text`` into chunks with contiguous indices starting at 0."""
        strategy = self.config.strategy
        if strategy == "paragraph":
            contents = self._split_paragraphs(text or "")
        elif strategy == "semantic":
            contents = self._split_semantic(text or "")
        else:
            contents = self._split_fixed(text or "")

        metadata = metadata or {}
        chunks = []
        for content in contents:
            content = content.strip()
            if not content:
                continue
            index = len(chunks)
            chunks.append(DocumentChunk(
                document_id=document_id,
                content=content,
                chunk_index=index,
                metadata={
                    **metadata,
                    "chunk_index": index,
                    "char_count": len(content),
                    "word_count": word_count(content),
                }
            ))

        logger.debug(f"Split document {document_id} into {len(chunks)} {strategy} chunks")
        return chunks

    def _split_fixed(self, text: str) -> List[str]:
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        text = normalize_whitespace(text)
        if not text:
            return []
        if len(text) <= size:
            return [text]

        pieces = []
        start = 0
        while start < len(text):
            end = min(start + size, len(text))
            if end < len(text) and self.config.preserve_sentences:
                boundary = find_last_sentence_boundary(text[start:end])
                if boundary > 0:
                    end = start + boundary

            pieces.append(text[start:end])
            if end >= len(text):
                break

            next_start = end - overlap
            start = next_start if next_start > start else end
        return pieces

    def _flush(self, buffer: str, pieces: List[str]) -> str:
        """Emit ``buffer`` and return the paragraph-mode overlap seed."""
        pieces.append(buffer)
        overlap = self.config.chunk_overlap
        if overlap > 0 and len(buffer) > overlap:
            return buffer[-overlap:]
        return ""

    def _split_paragraphs(self, text: str) -> List[str]:
        size = self.config.chunk_size
        pieces: List[str] = []
        buffer = ""

        for paragraph in self._paragraph_pattern.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if buffer and len(buffer) + len(paragraph) > size:
                buffer = self._flush(buffer, pieces)

            buffer += ("\n\n" if buffer else "") + paragraph

            if len(buffer) > size:
                pieces.extend(self._split_fixed(buffer))
                buffer = ""

        if buffer.strip():
            pieces.append(buffer)
        return pieces

    def _split_semantic(self, text: str) -> List[str]:
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        pieces: List[str] = []
        buffer = ""

        parts = self._unit_pattern.split(text)
        for i in range(0, len(parts), 2):
            separator = parts[i + 1] if i + 1 < len(parts) else ""
            unit = parts[i] + separator
            if not unit:
                continue

            if buffer and len(buffer) + len(unit) > size:
                pieces.append(buffer)
                buffer = ""
                if overlap > 0 and len(pieces[-1]) > overlap:
                    overlap_text = pieces[-1][-overlap:]
                    match = self._unit_pattern.search(overlap_text)
                    buffer = overlap_text[match.end():] if match else ""

            buffer += unit

            if len(buffer) > size:
                pieces.extend(self._split_fixed(buffer))
                buffer = ""

        if buffer.strip():
            pieces.append(buffer)
        return pieces

    def deduplicate_chunks(
        self,
        chunks: List[DocumentChunk],
        similarity_threshold: float = 0.85
    ) -> List[DocumentChunk]:
        """Drop chunks whose normalized content exactly repeats an earlier chunk.

        ``similarity_threshold`` is accepted for API compatibility only; no
        fuzzy comparison is performed.
        """
        seen = set()
        deduped = []
        for chunk in chunks:
            if not chunk.content or not chunk.content.strip():
                continue
            normalized = re.sub(r"\s+", " ", chunk.content.lower()).strip()
            digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
            if digest in seen:
                continue
            seen.add(digest)
            deduped.append(chunk)

        if len(deduped) < len(chunks):
            logger.info(f"Removed {len(chunks) - len(deduped)} duplicate chunks")
        return deduped
