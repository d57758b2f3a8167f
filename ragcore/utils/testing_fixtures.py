"""
Test fixtures for components.
"""

import pytest
from typing import Callable, List
from pathlib import Path
import tempfile

from ..components.context.assembler import ContextAssembler
from ..components.document_processing.processor import DocumentProcessor
from ..components.prompts.formatter import PromptFormatter
from ..components.query.processor import QueryProcessor
from ..components.search.searcher import VectorSearchService
from ..config.processor import ChunkerConfig, EmbeddingConfig, ProcessorConfig
from ..config.query import AssemblyConfig, QueryConfig, SearchConfig
from ..config.rate_limiter import RateLimitConfig
from ..services.embeddings import EmbeddingService
from ..utils.rate_limiter import RetryPolicy
from .testing import (
    FakeEmbeddingProvider, FakeLLMProvider, InMemoryBlobStorage,
    InMemoryDocumentStore
)
from .testing_async import RecordingSleep


@pytest.fixture
def recording_sleep():
    """Fixture for a sleep that records delays."""
    return RecordingSleep()


@pytest.fixture
def rate_limit_config():
    """Retry settings with short delays and no batch throttling."""
    return RateLimitConfig(max_retries=2, initial_delay=0.5, batch_delay=0.0)


@pytest.fixture
def retry_policy(rate_limit_config, recording_sleep):
    return RetryPolicy(rate_limit_config, sleep=recording_sleep)


@pytest.fixture
def document_store():
    """Fixture for the in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def blob_storage():
    return InMemoryBlobStorage()


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider, document_store, retry_policy):
    """Fixture for an embedding service over the fake provider."""
    return EmbeddingService(
        provider=embedding_provider,
        store=document_store,
        config=EmbeddingConfig(model_name=embedding_provider.model_name, batch_size=4),
        retry_policy=retry_policy
    )


@pytest.fixture
def processor_config(rate_limit_config):
    """Fixture for processor configuration."""
    return ProcessorConfig(
        chunker_config=ChunkerConfig(chunk_size=1000, chunk_overlap=200, strategy="fixed"),
        embedding_config=EmbeddingConfig(model_name="text-embedding-004", batch_size=4),
        rate_limit_config=rate_limit_config,
        storage_batch_size=3
    )


@pytest.fixture
def document_processor(document_store, blob_storage, embedding_service, processor_config):
    """Fixture for document processor."""
    return DocumentProcessor(
        store=document_store,
        blob_storage=blob_storage,
        embedding_service=embedding_service,
        config=processor_config
    )


@pytest.fixture
def search_service(embedding_service, document_store):
    """Fixture for vector search."""
    return VectorSearchService(embedding_service, document_store)


@pytest.fixture
def llm():
    return FakeLLMProvider()


@pytest.fixture
def query_config():
    return QueryConfig(
        search=SearchConfig(limit=5, threshold=0.1),
        assembly=AssemblyConfig(max_tokens=600, reserved_tokens=100)
    )


@pytest.fixture
def make_query_processor(search_service, llm, query_config) -> Callable[..., QueryProcessor]:
    """Factory building a query processor, optionally with a custom config or LLM."""
    def _make(config: QueryConfig = None, llm_provider: FakeLLMProvider = None) -> QueryProcessor:
        config = config or query_config
        provider = llm_provider or llm
        return QueryProcessor(
            search_service=search_service,
            assembler=ContextAssembler(provider, config.assembly),
            formatter=PromptFormatter(config.prompt),
            llm=provider,
            config=config
        )
    return _make


@pytest.fixture
def temp_dir():
    """Fixture for temporary directory."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_documents() -> List[str]:
    """Fixture for sample document texts."""
    return [
        "The quarterly revenue grew by twelve percent driven by subscription sales.",
        "Employees accrue vacation days monthly and may carry over five days.",
        "The office relocates to the riverside building in the spring.",
    ]
