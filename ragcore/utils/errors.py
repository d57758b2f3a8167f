"""
Custom error types and error handling utilities.

Errors raised by the ingestion and query pipelines carry the stage they
failed in, so callers can branch on ``error.stage`` instead of parsing
messages.
"""

import inspect
import logging
import traceback
from enum import Enum
from functools import wraps
from typing import Any, Optional, Type

logger = logging.getLogger(__name__)


class ProcessingStage(str, Enum):
    """Stages of the document ingestion pipeline."""
    EXTRACTION = "extraction"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    STORAGE = "storage"


class QueryStage(str, Enum):
    """Stages of the query pipeline."""
    SEARCH = "search"
    ASSEMBLY = "assembly"
    FORMATTING = "formatting"
    GENERATION = "generation"


class RagCoreError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class ExtractionError(RagCoreError):
    """Raised when text cannot be extracted from a file."""

    def __init__(self, message: str, file_type: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.file_type = file_type


class ChunkingError(RagCoreError):
    """Raised for malformed chunker configuration or chunking failures."""
    pass


class EmbeddingError(RagCoreError):
    """Raised when embeddings cannot be generated."""

    def __init__(
        self,
        message: str,
        chunk_id: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, cause)
        self.chunk_id = chunk_id


class StorageError(RagCoreError):
    """Raised when the document store rejects an operation."""
    pass


class BlobNotFoundError(RagCoreError):
    """Raised when a stored file does not exist."""

    def __init__(self, path: str, cause: Optional[BaseException] = None):
        super().__init__(f"Object not found in storage: {path}", cause)
        self.path = path


class DocumentProcessingError(RagCoreError):
    """The only error type that leaves the document processor."""

    def __init__(
        self,
        message: str,
        stage: Optional[ProcessingStage] = None,
        document_id: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, cause)
        self.stage = stage
        self.document_id = document_id

    def __repr__(self) -> str:
        stage = self.stage.value if self.stage else None
        return (
            f"DocumentProcessingError(stage={stage!r}, "
            f"document_id={self.document_id!r}, message={self.message!r})"
        )


class VectorSearchError(RagCoreError):
    """Raised when similarity search or query embedding fails."""
    pass


class ContextAssemblerError(RagCoreError):
    """Raised when token counting or context packing fails."""
    pass


class QueryProcessingError(RagCoreError):
    """Wraps a failure of one query stage."""

    def __init__(
        self,
        message: str,
        stage: Optional[QueryStage] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, cause)
        self.stage = stage

    def __repr__(self) -> str:
        stage = self.stage.value if self.stage else None
        return f"QueryProcessingError(stage={stage!r}, message={self.message!r})"


def handle_exceptions(
    error_type: Type[RagCoreError],
    default_message: str,
    reraise: bool = True,
    log_level: str = "error",
    **error_kwargs: Any
) -> callable:
    """Decorator for handling exceptions with proper logging.

    Exceptions that already have ``error_type`` pass through untouched;
    anything else is logged and re-raised as ``error_type`` with
    ``error_kwargs`` (for example ``stage=QueryStage.SEARCH``).
    """
    def _wrap(e: Exception):
        if isinstance(e, error_type):
            raise e
        log_func = getattr(logger, log_level)
        error_msg = f"{default_message}: {str(e)}"
        log_func(error_msg)
        log_func(f"Traceback:\n{traceback.format_exc()}")
        if reraise:
            raise error_type(error_msg, cause=e, **error_kwargs) from e
        return None

    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    return _wrap(e)
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                return _wrap(e)
        return wrapper
    return decorator
