"""
Pydantic schemas passed between pipeline stages.

Anything that arrives from a collaborator as an untyped mapping (similarity
search rows, provider payloads) is validated into one of these models at the
boundary.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class SourceType(str, Enum):
    FILE_UPLOAD = "file_upload"
    NOTION = "notion"
    GOOGLE_CALENDAR = "google_calendar"
    GMAIL = "gmail"


class TaskType(str, Enum):
    """Hint passed to the embedding provider."""
    RETRIEVAL_DOCUMENT = "retrieval_document"
    RETRIEVAL_QUERY = "retrieval_query"


class DocumentRecord(BaseModel):
    """Stored document row."""
    id: str
    title: str
    user_id: str
    status: DocumentStatus = DocumentStatus.PROCESSING
    file_path: Optional[str] = None
    file_type: Optional[str] = None
    error_message: Optional[str] = None
    source_type: SourceType = SourceType.FILE_UPLOAD
    source_id: Optional[str] = None
    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DocumentChunk(BaseModel):
    """A chunk as produced by the chunker and persisted by the store."""
    id: Optional[str] = None
    document_id: Optional[str] = None
    content: str
    chunk_index: int = Field(..., ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class ChunkWithEmbedding(DocumentChunk):
    embedding: Optional[List[float]] = Field(None, description="Absent when embedding failed")


class EmbeddingRecord(BaseModel):
    id: Optional[str] = None
    chunk_id: str
    embedding: List[float]
    model: str
    created_at: Optional[datetime] = None


class SearchOptions(BaseModel):
    """Options for a single similarity search."""
    limit: int = Field(10, ge=1, description="Maximum number of matches")
    threshold: float = Field(0.7, ge=0, le=1, description="Minimum similarity score")
    user_id: str = Field(..., min_length=1, description="Owner id used to scope the search")
    source_types: Optional[List[SourceType]] = None
    document_type: Optional[str] = Field(None, description="Keep only this document type")
    metadata_filters: Dict[str, Any] = Field(default_factory=dict)
    exclude_document_ids: List[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    """One row returned by the similarity search, with document fields denormalized."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Chunk id")
    document_id: str
    content: str
    chunk_index: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)
    similarity: float
    title: Optional[str] = Field(None, alias="document_title")
    document_type: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ContextSource(BaseModel):
    """Representative source entry for one document in an assembled context."""
    index: int = Field(..., description="1-based document order in the context")
    document_id: str
    chunk_id: str
    title: str
    document_type: Optional[str] = None
    similarity: float


class AssembledContext(BaseModel):
    context: str
    sources: List[ContextSource] = Field(default_factory=list)
    token_count: int = 0
    total_chunks: int = 0
    used_chunks: int = 0
    chunks: List[SearchResult] = Field(default_factory=list)


class FormattedPrompt(BaseModel):
    system_message: str
    user_message: str
    sources: List[ContextSource] = Field(default_factory=list)


class GenerationOptions(BaseModel):
    temperature: float = Field(0.7, ge=0, le=2)
    max_tokens: int = Field(1000, ge=1)


class LLMUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    text: str
    usage: LLMUsage = Field(default_factory=LLMUsage)
    model: Optional[str] = None


class DisplaySource(BaseModel):
    """User-facing citation."""
    document_id: str
    chunk_id: str
    title: str
    snippet: str
    similarity: Optional[float] = None


class ProcessedResponse(BaseModel):
    response_text: str
    sources: List[DisplaySource] = Field(default_factory=list)

    @property
    def has_source_attribution(self) -> bool:
        return bool(self.sources)


class QueryMetadata(BaseModel):
    timings: Dict[str, float] = Field(default_factory=dict, description="Per-stage milliseconds")
    processing_time_ms: float = 0.0
    usage: LLMUsage = Field(default_factory=LLMUsage)
    context_tokens: int = 0
    total_chunks: int = 0
    used_chunks: int = 0
    model: Optional[str] = None
    cache_hit: bool = False


class QueryDebugInfo(BaseModel):
    search_results: List[SearchResult] = Field(default_factory=list)
    assembled_context: Optional[AssembledContext] = None
    formatted_prompt: Optional[FormattedPrompt] = None
    raw_response: Optional[LLMResponse] = None


class QueryResult(BaseModel):
    query: str
    content: str
    sources: List[ContextSource] = Field(default_factory=list)
    citations: List[DisplaySource] = Field(default_factory=list)
    metadata: QueryMetadata = Field(default_factory=QueryMetadata)
    debug: Optional[QueryDebugInfo] = None


class ExtractionResult(BaseModel):
    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessDocumentRequest(BaseModel):
    """Input to the ingestion pipeline."""
    user_id: str
    title: str
    file_path: Optional[str] = None
    file_type: Optional[str] = None
    raw_content: Optional[str] = None
    source_type: SourceType = SourceType.FILE_UPLOAD
    source_id: Optional[str] = None
    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    chunk_size: Optional[int] = Field(None, description="Overrides the configured chunk size")
    chunk_overlap: Optional[int] = None
    strategy: Optional[str] = None


class DocumentProcessingResult(BaseModel):
    document_id: str
    status: DocumentStatus
    chunk_count: int = 0


class DocumentStatusReport(BaseModel):
    document_id: str
    status: DocumentStatus
    error_message: Optional[str] = None
