import pytest

from ragcore.components.prompts.formatter import (
    PRIMARY_SOURCES_PREFIX, REFUSAL_MESSAGE, PromptFormatter, add_inline_citations
)
from ragcore.config.query import PromptConfig
from ragcore.models.schemas import AssembledContext, ContextSource

CONTEXT_TEXT = (
    "## [1] Handbook (file_upload)\n\nVacation accrues monthly.\n\n"
    "**Metadata:**\n\n- page: 4\n\n"
    "---\n\n"
    "## [2] Memo (notion)\n\nOffice moves in spring.\n\n"
)


def _context() -> AssembledContext:
    return AssembledContext(
        context=CONTEXT_TEXT,
        sources=[
            ContextSource(index=1, document_id="doc-aaa", chunk_id="c1", title="Handbook",
                          document_type="file_upload", similarity=0.9),
            ContextSource(index=2, document_id="doc-bbb", chunk_id="c2", title="Memo",
                          document_type="notion", similarity=0.8),
        ],
        token_count=20,
        total_chunks=2,
        used_chunks=2,
    )


def test_inline_citations_tag_content_lines():
    cited = add_inline_citations(CONTEXT_TEXT)

    assert "Vacation accrues monthly. [1]" in cited
    assert "Office moves in spring. [2]" in cited
    assert "- page: 4\n" in cited
    assert "**Metadata:** [" not in cited
    assert "## [1] Handbook (file_upload)\n" in cited


def test_rag_prompt_contains_refusal_and_query():
    prompt = PromptFormatter().format_prompt("When do we move?", _context())

    assert REFUSAL_MESSAGE in prompt.system_message
    assert REFUSAL_MESSAGE in prompt.user_message
    assert "Query: When do we move?" in prompt.user_message
    assert "Office moves in spring. [2]" in prompt.user_message
    assert [s.document_id for s in prompt.sources] == ["doc-aaa", "doc-bbb"]


def test_end_citations_list_sources():
    formatter = PromptFormatter(PromptConfig(citation_style="end", request_source_ids=False))

    prompt = formatter.format_prompt("When do we move?", _context())

    assert "Office moves in spring.\n" in prompt.user_message
    assert "Vacation accrues monthly. [1]" not in prompt.user_message
    assert prompt.user_message.endswith("Sources:\n[1] Handbook (file_upload)\n[2] Memo (notion)\n")


def test_source_id_request_appended():
    prompt = PromptFormatter().format_prompt("q", _context())

    assert "Source document IDs:\n[1] doc-aaa\n[2] doc-bbb" in prompt.user_message
    assert f"{PRIMARY_SOURCES_PREFIX} None" in prompt.user_message


def test_no_source_id_request_without_sources():
    prompt = PromptFormatter().format_prompt("q", AssembledContext(context=""))
    assert "Source document IDs" not in prompt.user_message


def test_placeholders_substituted_once():
    prompt = PromptFormatter(PromptConfig(request_source_ids=False)).format_prompt(
        "explain {context} please", _context()
    )

    assert "Query: explain {context} please" in prompt.user_message
    assert prompt.user_message.count("Vacation accrues monthly.") == 1


@pytest.mark.parametrize("prompt_type", ["qa", "summary", "analysis"])
def test_other_templates(prompt_type):
    prompt = PromptFormatter(PromptConfig(prompt_type=prompt_type)).format_prompt("topic", _context())

    assert "topic" in prompt.user_message
    assert "Vacation accrues monthly." in prompt.user_message
    assert "{context}" not in prompt.user_message
    assert "{query}" not in prompt.user_message


def test_custom_templates():
    config = PromptConfig(
        system_template="Be brief.",
        prompt_template="Q={query}\nC={context}",
        citation_style="end",
        request_source_ids=False,
    )

    prompt = PromptFormatter(config).format_prompt("why", AssembledContext(context="ctx"))

    assert prompt.system_message == "Be brief."
    assert prompt.user_message == "Q=why\nC=ctx"


def test_unknown_prompt_type_rejected():
    with pytest.raises(ValueError):
        PromptConfig(prompt_type="poem")
