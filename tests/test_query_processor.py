import asyncio
from dataclasses import replace

import pytest

from ragcore.models.schemas import ProcessDocumentRequest
from ragcore.utils.errors import QueryProcessingError, QueryStage
from ragcore.utils.testing import FakeLLMProvider
from ragcore.utils.testing_async import async_test, never_finishes

QUESTION = "quarterly revenue subscription sales"


async def _ingest(document_processor, sample_documents, user_id="user-1"):
    ids = []
    for i, text in enumerate(sample_documents):
        result = await document_processor.process_document(
            ProcessDocumentRequest(user_id=user_id, title=f"Doc {i}", raw_content=text)
        )
        ids.append(result.document_id)
    return ids


@async_test
async def test_answer_with_citations(document_processor, sample_documents, make_query_processor, llm):
    ids = await _ingest(document_processor, sample_documents)
    llm.response_text = f"Revenue grew twelve percent [1].\nPrimary Sources: {ids[0][:8]}"
    processor = make_query_processor()

    result = await processor.process_query(QUESTION, user_id="user-1")

    assert result.content == "Revenue grew twelve percent [1]."
    assert [c.document_id for c in result.citations] == [ids[0]]
    assert result.sources[0].document_id == ids[0]
    assert set(result.metadata.timings) == {"search", "assembly", "formatting", "generation"}
    assert result.metadata.cache_hit is False
    assert result.metadata.used_chunks >= 1
    assert result.metadata.model == "fake-llm"
    assert result.metadata.usage.total_tokens > 0
    assert result.debug is None
    assert "Source document IDs:" in llm.prompts[0]
    assert llm.options[0].max_tokens == 1000


@async_test
async def test_repeated_query_is_served_from_cache(document_processor, sample_documents, make_query_processor, llm):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor()

    first = await processor.process_query(QUESTION, user_id="user-1")
    second = await processor.process_query(f"  {QUESTION.upper()} ", user_id="user-1")

    assert llm.call_count == 1
    assert second.metadata.cache_hit is True
    assert second.content == first.content
    assert first.metadata.cache_hit is False


@async_test
async def test_cache_is_per_user(document_processor, sample_documents, make_query_processor, llm):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor()

    await processor.process_query(QUESTION, user_id="user-1")
    await processor.process_query(QUESTION, user_id="user-2")

    assert llm.call_count == 2


@async_test
async def test_clear_cache(document_processor, sample_documents, make_query_processor, llm):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor()

    await processor.process_query(QUESTION, user_id="user-1")
    processor.clear_cache()
    await processor.process_query(QUESTION, user_id="user-1")

    assert llm.call_count == 2


@async_test
async def test_cache_disabled(document_processor, sample_documents, make_query_processor, query_config, llm):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor(replace(query_config, cache_enabled=False))

    await processor.process_query(QUESTION, user_id="user-1")
    await processor.process_query(QUESTION, user_id="user-1")

    assert processor.cache is None
    assert llm.call_count == 2


@async_test
async def test_debug_mode_attaches_intermediates(document_processor, sample_documents, make_query_processor, query_config):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor(replace(query_config, debug_mode=True))

    result = await processor.process_query(QUESTION, user_id="user-1")

    assert result.debug is not None
    assert result.debug.search_results
    assert result.debug.assembled_context.used_chunks == result.metadata.used_chunks
    assert result.debug.formatted_prompt.user_message
    assert result.debug.raw_response.text == "Answer."


@async_test
async def test_search_failure_is_tagged(make_query_processor, embedding_provider):
    embedding_provider.fail_times = 10

    with pytest.raises(QueryProcessingError) as exc_info:
        await make_query_processor().process_query(QUESTION, user_id="user-1")

    assert exc_info.value.stage == QueryStage.SEARCH


@async_test
async def test_generation_failure_is_tagged(document_processor, sample_documents, make_query_processor):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor(llm_provider=FakeLLMProvider(fail_with=RuntimeError("model overloaded")))

    with pytest.raises(QueryProcessingError) as exc_info:
        await processor.process_query(QUESTION, user_id="user-1")

    assert exc_info.value.stage == QueryStage.GENERATION
    assert isinstance(exc_info.value.cause, RuntimeError)


class BrokenCounter(FakeLLMProvider):
    async def count_tokens(self, text: str) -> int:
        raise RuntimeError("tokenizer unavailable")


@async_test
async def test_assembly_failure_is_tagged(document_processor, sample_documents, make_query_processor):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor(llm_provider=BrokenCounter())

    with pytest.raises(QueryProcessingError) as exc_info:
        await processor.process_query(QUESTION, user_id="user-1")

    assert exc_info.value.stage == QueryStage.ASSEMBLY


@async_test
async def test_stage_timeout(document_processor, sample_documents, make_query_processor, query_config, llm):
    await _ingest(document_processor, sample_documents)
    llm.generate = never_finishes
    processor = make_query_processor(replace(query_config, stage_timeout=0.05))

    with pytest.raises(QueryProcessingError) as exc_info:
        await processor.process_query(QUESTION, user_id="user-1")

    assert exc_info.value.stage == QueryStage.GENERATION
    assert isinstance(exc_info.value.cause, asyncio.TimeoutError)


@async_test
async def test_failures_are_not_cached(document_processor, sample_documents, make_query_processor, llm):
    await _ingest(document_processor, sample_documents)
    processor = make_query_processor()
    llm.fail_with = RuntimeError("transient")

    with pytest.raises(QueryProcessingError):
        await processor.process_query(QUESTION, user_id="user-1")

    llm.fail_with = None
    result = await processor.process_query(QUESTION, user_id="user-1")
    assert result.metadata.cache_hit is False
    assert llm.call_count == 2


@async_test
async def test_no_matches_still_answers(make_query_processor, llm):
    llm.response_text = "I don't have enough information in the provided documents to answer that."

    result = await make_query_processor().process_query(QUESTION, user_id="user-1")

    assert result.sources == []
    assert result.citations == []
    assert result.metadata.used_chunks == 0
    assert result.content == llm.response_text


@pytest.mark.parametrize("user_id", [None, "", "   "])
@async_test
async def test_owner_is_required(document_processor, sample_documents, make_query_processor, llm, user_id):
    await _ingest(document_processor, sample_documents)

    with pytest.raises(QueryProcessingError) as exc_info:
        await make_query_processor().process_query(QUESTION, user_id=user_id)

    assert exc_info.value.stage == QueryStage.SEARCH
    assert llm.call_count == 0


@async_test
async def test_other_users_documents_never_reach_the_prompt(
    document_processor, sample_documents, make_query_processor, llm
):
    alice_ids = await _ingest(document_processor, sample_documents[:1], user_id="alice")
    bob_ids = await _ingest(document_processor, sample_documents[1:], user_id="bob")

    result = await make_query_processor().process_query(QUESTION, user_id="bob")

    assert alice_ids[0] not in [source.document_id for source in result.sources]
    assert set(source.document_id for source in result.sources) <= set(bob_ids)
    assert "twelve percent" not in llm.prompts[0]
