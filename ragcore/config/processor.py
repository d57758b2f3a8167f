"""
Document processor configuration settings.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Literal, Optional

from dotenv import load_dotenv

from .database import PostgresConfig
from .rate_limiter import RateLimitConfig

load_dotenv()

ChunkStrategy = Literal["fixed", "paragraph", "semantic"]

DEFAULT_DIMENSION = 768

MODEL_DIMENSIONS: Dict[str, int] = {
    "text-embedding-ada-002": 1536,
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-004": 768,
}


def get_model_dimension(model_name: str) -> int:
    return MODEL_DIMENSIONS.get(model_name, DEFAULT_DIMENSION)


@dataclass
class ChunkerConfig:
    """Configuration for text chunking."""
    chunk_size: int = int(os.getenv('CHUNK_SIZE', 1000))
    chunk_overlap: int = int(os.getenv('CHUNK_OVERLAP', 200))
    strategy: ChunkStrategy = os.getenv('CHUNK_STRATEGY', 'fixed')
    preserve_sentences: bool = True
    semantic_unit_separator: str = ".!?"
    paragraph_separator: str = r"\n\s*\n"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""
    model_name: str = os.getenv('EMBEDDING_MODEL', 'text-embedding-ada-002')
    batch_size: int = int(os.getenv('EMBEDDING_BATCH_SIZE', 10))
    cache_enabled: bool = True

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")

    @property
    def dimension(self) -> int:
        """Vector length produced by the configured model."""
        return get_model_dimension(self.model_name)


@dataclass
class ProcessorConfig:
    """Configuration for document processing."""
    chunker_config: ChunkerConfig = field(default_factory=ChunkerConfig)
    embedding_config: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    rate_limit_config: RateLimitConfig = field(default_factory=RateLimitConfig)
    postgres_config: Optional[PostgresConfig] = None
    storage_batch_size: int = 10
    blob_storage_dir: str = os.getenv('BLOB_STORAGE_DIR', 'documents')
    openai_api_key: Optional[str] = os.getenv('OPENAI_API_KEY')

    def __post_init__(self):
        if self.storage_batch_size < 1:
            raise ValueError("storage_batch_size must be positive")
