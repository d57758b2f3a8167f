from ragcore.components.response.processor import ResponseProcessor, split_primary_sources
from ragcore.models.schemas import SearchResult


def _chunk(chunk_id, document_id, content="Some supporting content.", chunk_index=0, title="Report"):
    return SearchResult(
        id=chunk_id, document_id=document_id, content=content,
        chunk_index=chunk_index, similarity=0.9, title=title
    )


def test_split_primary_sources():
    assert split_primary_sources("Answer.\nPrimary Sources: abc, def") == ("Answer.", ["abc", "def"])
    assert split_primary_sources("Answer.\nPrimary Sources: None") == ("Answer.", [])
    assert split_primary_sources("Answer without sources.") == ("Answer without sources.", None)
    assert split_primary_sources("Answer.\nPrimary Sources: [abc]\n\n") == ("Answer.", ["abc"])
    assert split_primary_sources("Answer.\nPrimary Sources: abc123.") == ("Answer.", ["abc123"])
    assert split_primary_sources("Answer.\nPrimary Sources: abc; , def;") == ("Answer.", ["abc", "def"])
    assert split_primary_sources("Answer.\nPrimary Sources: None.") == ("Answer.", [])


def test_cited_prefix_maps_to_chunk():
    chunks = [_chunk("c1", "abc123-0000-4000-8000-000000000001", chunk_index=2)]

    processed = ResponseProcessor().process_response(
        "Revenue grew twelve percent [1].\nPrimary Sources: abc123", chunks
    )

    assert processed.response_text == "Revenue grew twelve percent [1]."
    assert processed.has_source_attribution
    source = processed.sources[0]
    assert source.document_id == "abc123-0000-4000-8000-000000000001"
    assert source.chunk_id == "c1"
    assert source.title == "Report (Chunk 3)"
    assert source.snippet == "Some supporting content."


def test_trailing_punctuation_on_cited_id():
    chunks = [_chunk("c1", "abc123-0000-4000-8000-000000000001")]

    processed = ResponseProcessor().process_response("Revenue grew.\nPrimary Sources: abc123.", chunks)

    assert [s.document_id for s in processed.sources] == ["abc123-0000-4000-8000-000000000001"]


def test_primary_sources_none():
    processed = ResponseProcessor().process_response(
        "I could not find it.\nPrimary Sources: None", [_chunk("c1", "abc")]
    )

    assert processed.response_text == "I could not find it."
    assert processed.sources == []
    assert not processed.has_source_attribution


def test_missing_line_leaves_text_untouched():
    processed = ResponseProcessor().process_response("  Plain answer.  ", [_chunk("c1", "abc")])

    assert processed.response_text == "Plain answer."
    assert processed.sources == []


def test_duplicates_and_unknown_ids():
    chunks = [
        _chunk("c1", "doc-aaa", chunk_index=0),
        _chunk("c2", "doc-aaa", chunk_index=1),
        _chunk("c3", "doc-bbb", title=None),
    ]

    processed = ResponseProcessor().process_response(
        "Answer.\nPrimary Sources: doc-aaa, doc-a, missing, doc-bbb", chunks
    )

    assert [s.chunk_id for s in processed.sources] == ["c1", "c3"]
    assert processed.sources[1].title == "Document doc-bbb (Chunk 1)"


def test_long_snippet_truncated():
    chunks = [_chunk("c1", "doc-aaa", content="x" * 250)]

    processed = ResponseProcessor().process_response("A.\nPrimary Sources: doc-aaa", chunks)

    assert processed.sources[0].snippet == "x" * 100 + "..."
