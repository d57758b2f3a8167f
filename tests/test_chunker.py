import pytest

from ragcore.components.chunking.chunker import DocumentChunker, find_last_sentence_boundary
from ragcore.config.processor import ChunkerConfig
from ragcore.models.schemas import DocumentChunk
from ragcore.utils.errors import ChunkingError


def _sentences(count: int) -> str:
    return " ".join(f"Sentence number {i} talks about topic {i % 7}." for i in range(count))


def _paragraphs(count: int, size: int = 300) -> str:
    paragraphs = []
    for i in range(count):
        body = f"Paragraph {i} opens here. "
        body += "Filler text continues. " * ((size - len(body)) // 23)
        paragraphs.append(body.strip())
    return "\n\n".join(paragraphs)


@pytest.mark.parametrize("strategy", ["fixed", "paragraph", "semantic"])
def test_indices_are_contiguous_and_sizes_bounded(strategy):
    chunker = DocumentChunker(ChunkerConfig(chunk_size=500, chunk_overlap=100, strategy=strategy))
    text = _paragraphs(12) if strategy == "paragraph" else _sentences(120)

    chunks = chunker.chunk_document(text, "doc-1")

    assert len(chunks) >= 2
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert chunk.document_id == "doc-1"
        assert chunk.content.strip()
        assert len(chunk.content) <= 500
        assert chunk.metadata["chunk_index"] == chunk.chunk_index
        assert chunk.metadata["char_count"] == len(chunk.content)


def _shared_overlap(previous: str, current: str, limit: int) -> int:
    for size in range(min(limit, len(previous), len(current)), 0, -1):
        if previous.endswith(current[:size]):
            return size
    return 0


@pytest.mark.parametrize("text", [
    " ".join(f"token{i}" for i in range(200)),
    _sentences(40),
], ids=["no-punctuation", "sentences"])
def test_fixed_raw_cuts_bound_size_and_overlap(text):
    chunker = DocumentChunker(ChunkerConfig(
        chunk_size=100, chunk_overlap=20, strategy="fixed", preserve_sentences=False
    ))

    chunks = chunker.chunk_document(text, "doc-1")

    assert len(chunks) > 2
    for chunk in chunks[:-1]:
        assert len(chunk.content) <= 100
    for previous, current in zip(chunks, chunks[1:]):
        assert _shared_overlap(previous.content, current.content, 20) > 0


def test_fixed_chunks_overlap():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=1000, chunk_overlap=200, strategy="fixed"))
    chunks = chunker.chunk_document(_sentences(200), "doc-1")

    for previous, current in zip(chunks, chunks[1:]):
        assert current.content[:50] in previous.content


def test_fixed_prefers_sentence_boundaries():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=400, chunk_overlap=50, strategy="fixed"))
    chunks = chunker.chunk_document(_sentences(60), "doc-1")

    for chunk in chunks[:-1]:
        assert chunk.content.endswith(".")


def test_short_text_is_single_chunk():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=1000, chunk_overlap=200))
    chunks = chunker.chunk_document("  A short   note.  ", "doc-1", {"source": "test"})

    assert len(chunks) == 1
    assert chunks[0].content == "A short note."
    assert chunks[0].metadata["source"] == "test"
    assert chunks[0].metadata["word_count"] == 3


@pytest.mark.parametrize("strategy", ["fixed", "paragraph", "semantic"])
def test_empty_text_yields_no_chunks(strategy):
    chunker = DocumentChunker(ChunkerConfig(chunk_size=100, chunk_overlap=10, strategy=strategy))
    assert chunker.chunk_document("", "doc-1") == []
    assert chunker.chunk_document(" \n\n \t ", "doc-1") == []


def test_paragraph_strategy_keeps_paragraphs_together():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=1000, chunk_overlap=0, strategy="paragraph"))
    text = "First paragraph.\n\nSecond paragraph.\n\nThird paragraph."

    chunks = chunker.chunk_document(text, "doc-1")

    assert len(chunks) == 1
    assert chunks[0].content == text


def test_paragraph_overlap_is_seeded_from_previous_chunk():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=700, chunk_overlap=50, strategy="paragraph"))
    chunks = chunker.chunk_document(_paragraphs(6), "doc-1")

    assert len(chunks) >= 2
    for previous, current in zip(chunks, chunks[1:]):
        assert previous.content[-50:].strip() in current.content


def test_semantic_overlap_starts_on_unit_boundary():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=200, chunk_overlap=60, strategy="semantic"))
    text = " ".join(f"Unit {i} ends here." for i in range(40))

    chunks = chunker.chunk_document(text, "doc-1")

    assert len(chunks) >= 2
    for chunk in chunks[1:]:
        assert chunk.content.startswith("Unit")


def test_oversized_paragraph_falls_back_to_fixed():
    chunker = DocumentChunker(ChunkerConfig(chunk_size=200, chunk_overlap=20, strategy="paragraph"))
    text = "word " * 300

    chunks = chunker.chunk_document(text, "doc-1")

    assert len(chunks) > 1
    assert all(len(c.content) <= 200 for c in chunks)


@pytest.mark.parametrize("kwargs", [
    {"chunk_size": 0, "chunk_overlap": 0},
    {"chunk_size": 100, "chunk_overlap": -1},
    {"chunk_size": 100, "chunk_overlap": 100},
    {"chunk_size": 100, "chunk_overlap": 10, "strategy": "recursive"},
])
def test_invalid_config_raises(kwargs):
    with pytest.raises(ChunkingError):
        DocumentChunker(ChunkerConfig(**kwargs))


def test_find_last_sentence_boundary():
    assert find_last_sentence_boundary("Hello world. Foo bar") == 12
    assert find_last_sentence_boundary("First part\n\nsecond part without end") == 10
    assert find_last_sentence_boundary("no punctuation here at all") == 22
    assert find_last_sentence_boundary("abc") == -1


def test_deduplicate_chunks_is_idempotent():
    chunker = DocumentChunker()
    chunks = [
        DocumentChunk(document_id="d", content="Same  text here", chunk_index=0),
        DocumentChunk(document_id="d", content="same text HERE", chunk_index=1),
        DocumentChunk(document_id="d", content="Different text", chunk_index=2),
    ]

    once = chunker.deduplicate_chunks(chunks)
    twice = chunker.deduplicate_chunks(once)

    assert [c.chunk_index for c in once] == [0, 2]
    assert [c.chunk_index for c in twice] == [0, 2]
