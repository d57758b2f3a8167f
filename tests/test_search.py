from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from ragcore.components.search.searcher import VectorSearchService
from ragcore.models.schemas import ProcessDocumentRequest, SearchOptions, SearchResult, TaskType
from ragcore.services.storage import PostgresDocumentStore
from ragcore.utils.errors import StorageError, VectorSearchError
from ragcore.utils.testing_async import async_test

OPTIONS = SearchOptions(user_id="user-1")


def _row(**overrides):
    row = {
        "id": "chunk-1",
        "document_id": "doc-1",
        "content": "Quarterly revenue grew.",
        "chunk_index": 0,
        "metadata": {"section": "finance"},
        "similarity": 0.91,
        "document_title": "Report",
        "document_type": "file_upload",
        "user_id": "user-1",
    }
    row.update(overrides)
    return row


def _service_with_rows(embedding_service, rows):
    store = AsyncMock()
    store.match_documents.return_value = rows
    return VectorSearchService(embedding_service, store), store


async def _ingest(document_processor, user_id, texts):
    ids = []
    for i, text in enumerate(texts):
        result = await document_processor.process_document(
            ProcessDocumentRequest(user_id=user_id, title=f"Doc {i}", raw_content=text)
        )
        ids.append(result.document_id)
    return ids


@async_test
async def test_search_finds_related_chunk(document_processor, search_service, sample_documents, embedding_provider):
    ids = await _ingest(document_processor, "user-1", sample_documents)

    results = await search_service.search(
        "quarterly revenue subscription sales",
        SearchOptions(limit=5, threshold=0.3, user_id="user-1")
    )

    assert results
    assert results[0].document_id == ids[0]
    assert results[0].title == "Doc 0"
    assert results[0].similarity > 0.3
    assert embedding_provider.task_types[-1] == TaskType.RETRIEVAL_QUERY


@async_test
async def test_search_is_scoped_to_user(document_processor, search_service, sample_documents):
    await _ingest(document_processor, "user-1", sample_documents)

    results = await search_service.search(
        "quarterly revenue subscription sales",
        SearchOptions(threshold=0.3, user_id="someone-else")
    )

    assert results == []


@async_test
async def test_results_sorted_and_limited(document_processor, search_service):
    await _ingest(document_processor, "user-1", [
        "apples and pears",
        "apples pears and plums",
        "apples pears plums and cherries",
    ])

    results = await search_service.search(
        "apples pears", SearchOptions(limit=2, threshold=0.1, user_id="user-1")
    )

    assert len(results) == 2
    assert results[0].similarity >= results[1].similarity


@async_test
async def test_rows_are_validated_and_passed_through(embedding_service):
    service, store = _service_with_rows(embedding_service, [_row()])

    results = await service.search("revenue", SearchOptions(limit=3, threshold=0.5, user_id="user-1"))

    assert results[0].title == "Report"
    assert results[0].metadata == {"section": "finance"}
    kwargs = store.match_documents.call_args.kwargs
    assert kwargs["match_threshold"] == 0.5
    assert kwargs["match_count"] == 3
    assert kwargs["user_id"] == "user-1"
    assert len(kwargs["query_embedding"]) == 768


@async_test
async def test_post_filters(embedding_service):
    rows = [
        _row(id="c1", document_id="d1"),
        _row(id="c2", document_id="d2", user_id="user-2"),
        _row(id="c3", document_id="d3", user_id=None),
        _row(id="c4", document_id="d4", document_type="notion"),
        _row(id="c5", document_id="d5", metadata={"section": "legal"}),
        _row(id="c6", document_id="d6"),
    ]
    service, _ = _service_with_rows(embedding_service, rows)

    results = await service.search("revenue", SearchOptions(
        user_id="user-1",
        document_type="file_upload",
        metadata_filters={"section": "finance"},
        exclude_document_ids=["d6"],
    ))

    assert [r.id for r in results] == ["c1"]


@async_test
async def test_malformed_row_raises(embedding_service):
    service, _ = _service_with_rows(embedding_service, [{"id": "c1", "similarity": 0.9}])

    with pytest.raises(VectorSearchError, match="Malformed"):
        await service.search("revenue", OPTIONS)


@async_test
async def test_store_failure_raises_search_error(embedding_service):
    store = AsyncMock()
    store.match_documents.side_effect = RuntimeError("connection reset")
    service = VectorSearchService(embedding_service, store)

    with pytest.raises(VectorSearchError) as exc_info:
        await service.search("revenue", OPTIONS)
    assert isinstance(exc_info.value.cause, RuntimeError)


@async_test
async def test_embedding_failure_raises_search_error(embedding_service, embedding_provider):
    embedding_provider.fail_times = 10

    with pytest.raises(VectorSearchError, match="query embedding"):
        await VectorSearchService(embedding_service, AsyncMock()).search("revenue", OPTIONS)


@pytest.mark.parametrize("query", ["", "   "])
@async_test
async def test_blank_query_rejected(embedding_service, query):
    service = VectorSearchService(embedding_service, AsyncMock())

    with pytest.raises(VectorSearchError, match="empty"):
        await service.search(query, OPTIONS)



def test_search_options_require_owner():
    with pytest.raises(ValidationError):
        SearchOptions()
    with pytest.raises(ValidationError):
        SearchOptions(user_id="")


@async_test
async def test_blank_owner_rejected_before_lookup(embedding_service):
    service, store = _service_with_rows(embedding_service, [_row()])

    with pytest.raises(VectorSearchError, match="user_id"):
        await service.search("revenue", SearchOptions(user_id="   "))
    store.match_documents.assert_not_called()


@async_test
async def test_rows_from_other_owners_are_dropped(embedding_service):
    service, _ = _service_with_rows(embedding_service, [
        _row(id="c1", user_id="alice"),
        _row(id="c2", user_id=None),
    ])

    assert await service.search("revenue", SearchOptions(user_id="bob")) == []


@pytest.mark.parametrize("user_id", [None, ""])
@async_test
async def test_in_memory_store_requires_owner(document_store, user_id):
    with pytest.raises(StorageError):
        await document_store.match_documents([1.0, 0.0], 0.1, 5, user_id=user_id)


@pytest.mark.parametrize("user_id", [None, ""])
@async_test
async def test_postgres_store_requires_owner(user_id):
    session_maker = MagicMock()
    store = PostgresDocumentStore(session_maker)

    with pytest.raises(StorageError):
        await store.match_documents([1.0, 0.0], 0.1, 5, user_id=user_id)
    session_maker.assert_not_called()


def test_format_results():
    assert VectorSearchService.format_results([]) == "No matching documents found."
    formatted = VectorSearchService.format_results([SearchResult.model_validate(_row())])
    assert "Score: 0.910" in formatted
    assert "Source: Report (Chunk: 0)" in formatted
