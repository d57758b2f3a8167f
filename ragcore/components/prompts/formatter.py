"""
Prompt formatting for the answer-generation call.
"""

import logging
import re
from typing import Dict, List, Optional

from ...config.query import PromptConfig
from ...models.schemas import AssembledContext, ContextSource, FormattedPrompt

logger = logging.getLogger(__name__)

REFUSAL_MESSAGE = "I don't have enough information in the provided documents to answer that."

PRIMARY_SOURCES_PREFIX = "Primary Sources:"

PROMPT_TEMPLATES: Dict[str, Dict[str, str]] = {
    "rag": {
        "system": (
            "You are an AI assistant that helps users find information in their documents. "
            "CRITICAL INSTRUCTION: Answer the user's question based *exclusively* on the provided context. "
            "Do *not* use any external knowledge or make assumptions. "
            "If the information is not present in the context, you MUST respond *exactly* with: "
            f"'{REFUSAL_MESSAGE}' "
            "Do not add any other explanation if the information is not found. "
            "If the answer is found, cite your sources using [number] notation corresponding "
            "to the context sections."
        ),
        "prompt": (
            "Context information is below.\n\n"
            "---------------------\n"
            "{context}\n"
            "---------------------\n\n"
            "Given the context information and not prior knowledge, answer the query.\n"
            "Query: {query}\n\n"
            "If the query cannot be answered based on the context, respond with "
            f"\"{REFUSAL_MESSAGE}\" "
            "Include citations to the relevant parts of the context using [number] notation."
        ),
    },
    "qa": {
        "system": (
            "You are an AI assistant designed for precise question answering. "
            "Directly answer the user's questions based on the provided information. "
            "Keep answers concise and to the point. "
            "If no clear answer exists in the context, state that clearly."
        ),
        "prompt": (
            "Answer the following question using only the provided context:\n\n"
            "Context:\n{context}\n\n"
            "Question: {query}\n\n"
            "Answer:"
        ),
    },
    "summary": {
        "system": (
            "You are an AI assistant that creates clear, concise summaries. "
            "Summarize the key points from the provided documents relevant to the user's query. "
            "Focus on accuracy and brevity."
        ),
        "prompt": (
            "Please summarize the following information, focusing on aspects relevant to: {query}\n\n"
            "---------------------\n"
            "{context}\n"
            "---------------------\n\n"
            "Provide a concise summary that captures the key points."
        ),
    },
    "analysis": {
        "system": (
            "You are an AI assistant specialized in deep analysis. "
            "Analyze the provided information to identify patterns, insights, and implications. "
            "Provide thoughtful analysis with supporting evidence from the context."
        ),
        "prompt": (
            "Analyze the following information with respect to: {query}\n\n"
            "---------------------\n"
            "{context}\n"
            "---------------------\n\n"
            "Provide a detailed analysis that identifies key patterns, connections, and implications. "
            "Use specific references from the provided context to support your analysis."
        ),
    },
}

_PLACEHOLDER = re.compile(r"\{(context|query)\}")


def add_inline_citations(context: str) -> str:
    """Append ``[n]`` to each content line of the n-th markdown document section."""
    cited = []
    current = 0
    in_section = False
    for line in context.split("\n"):
        if line.startswith("## ["):
            in_section = True
            current += 1
        elif line.startswith("---"):
            in_section = False
        elif in_section and line.strip() and not (
            "**Metadata:**" in line or line.startswith("- ")
        ):
            line = f"{line} [{current}]"
        cited.append(line)
    return "\n".join(cited)


class PromptFormatter:
    """Renders system and user messages from a template family."""

    def __init__(self, config: Optional[PromptConfig] = None):
        self.config = config or PromptConfig()
        templates = PROMPT_TEMPLATES[self.config.prompt_type]
        self.system_template = self.config.system_template or templates["system"]
        self.prompt_template = self.config.prompt_template or templates["prompt"]

    def format_prompt(self, query: str, context: AssembledContext) -> FormattedPrompt:
        if self.config.citation_style == "inline":
            context_text = add_inline_citations(context.context)
        else:
            context_text = context.context

        values = {"context": context_text, "query": query}
        user_message = _PLACEHOLDER.sub(lambda m: values[m.group(1)], self.prompt_template)

        if self.config.citation_style == "end":
            user_message += self._format_source_list(context.sources)
        if self.config.request_source_ids and context.sources:
            user_message += self._format_source_id_request(context.sources)

        logger.debug(
            f"Formatted {self.config.prompt_type} prompt with {len(context.sources)} sources"
        )
        return FormattedPrompt(
            system_message=self.system_template,
            user_message=user_message,
            sources=context.sources,
        )

    @staticmethod
    def _format_source_list(sources: List[ContextSource]) -> str:
        if not sources:
            return ""
        lines = ["\n\nSources:"]
        for i, source in enumerate(sources, 1):
            entry = f"[{i}] {source.title}"
            if source.document_type:
                entry += f" ({source.document_type})"
            lines.append(entry)
        return "\n".join(lines) + "\n"

    @staticmethod
    def _format_source_id_request(sources: List[ContextSource]) -> str:
        ids = "\n".join(f"[{source.index}] {source.document_id}" for source in sources)
        return (
            f"\n\nSource document IDs:\n{ids}\n\n"
            f"End your answer with a final line of the form "
            f"\"{PRIMARY_SOURCES_PREFIX} <comma-separated document IDs you used>\", "
            f"or \"{PRIMARY_SOURCES_PREFIX} None\" if you used none of them."
        )
