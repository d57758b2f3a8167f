"""
Shared pytest fixtures.
"""

from ragcore.utils.testing_fixtures import (  # noqa: F401
    blob_storage,
    document_processor,
    document_store,
    embedding_provider,
    embedding_service,
    llm,
    make_query_processor,
    processor_config,
    query_config,
    rate_limit_config,
    recording_sleep,
    retry_policy,
    sample_documents,
    search_service,
    temp_dir,
)
