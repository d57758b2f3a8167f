"""
Query pipeline configuration settings.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional

from dotenv import load_dotenv

from .rate_limiter import RateLimitConfig

load_dotenv()

OverlapStrategy = Literal["remove", "keep", "truncate"]
PrioritizeStrategy = Literal["similarity", "recency", "combined"]
FormatType = Literal["markdown", "json", "text"]
PromptType = Literal["rag", "qa", "summary", "analysis"]
CitationStyle = Literal["inline", "end"]


@dataclass
class SearchConfig:
    """Defaults for similarity search issued by the query pipeline."""
    limit: int = int(os.getenv('SEARCH_LIMIT', 15))
    threshold: float = float(os.getenv('SEARCH_THRESHOLD', 0.7))

    def __post_init__(self):
        if self.limit < 1:
            raise ValueError("limit must be positive")
        if not 0 <= self.threshold <= 1:
            raise ValueError("threshold must be between 0 and 1")


@dataclass
class AssemblyConfig:
    """Configuration for context assembly."""
    max_tokens: int = int(os.getenv('CONTEXT_MAX_TOKENS', 6000))
    reserved_tokens: int = int(os.getenv('CONTEXT_RESERVED_TOKENS', 1000))
    chunk_overlap_strategy: OverlapStrategy = "truncate"
    prioritize_strategy: PrioritizeStrategy = "similarity"
    include_metadata: bool = True
    format_type: FormatType = "markdown"

    def __post_init__(self):
        if self.max_tokens <= self.reserved_tokens:
            raise ValueError("max_tokens must exceed reserved_tokens")
        if self.chunk_overlap_strategy not in ("remove", "keep", "truncate"):
            raise ValueError(f"Unknown overlap strategy: {self.chunk_overlap_strategy}")
        if self.prioritize_strategy not in ("similarity", "recency", "combined"):
            raise ValueError(f"Unknown prioritize strategy: {self.prioritize_strategy}")
        if self.format_type not in ("markdown", "json", "text"):
            raise ValueError(f"Unknown format type: {self.format_type}")

    @property
    def token_budget(self) -> int:
        return self.max_tokens - self.reserved_tokens


@dataclass
class PromptConfig:
    """Configuration for prompt rendering."""
    prompt_type: PromptType = "rag"
    citation_style: CitationStyle = "inline"
    request_source_ids: bool = True
    system_template: Optional[str] = None
    prompt_template: Optional[str] = None

    def __post_init__(self):
        if self.prompt_type not in ("rag", "qa", "summary", "analysis"):
            raise ValueError(f"Unknown prompt type: {self.prompt_type}")
        if self.citation_style not in ("inline", "end"):
            raise ValueError(f"Unknown citation style: {self.citation_style}")


@dataclass
class LLMConfig:
    """Configuration for the chat model."""
    model_name: str = os.getenv('LLM_MODEL', 'gpt-3.5-turbo')
    temperature: float = float(os.getenv('LLM_TEMPERATURE', 0.7))
    max_tokens: int = int(os.getenv('LLM_MAX_TOKENS', 1000))
    openai_api_key: Optional[str] = os.getenv('OPENAI_API_KEY')
    rate_limit_config: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass
class QueryConfig:
    """Configuration for the query orchestrator."""
    search: SearchConfig = field(default_factory=SearchConfig)
    assembly: AssemblyConfig = field(default_factory=AssemblyConfig)
    prompt: PromptConfig = field(default_factory=PromptConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    cache_enabled: bool = True
    cache_ttl: float = float(os.getenv('QUERY_CACHE_TTL', 3600))
    cache_max_entries: int = 100
    cache_prune_to: int = 80
    debug_mode: bool = False
    stage_timeout: Optional[float] = None

    def __post_init__(self):
        if self.stage_timeout is not None and self.stage_timeout <= 0:
            raise ValueError("stage_timeout must be positive")
