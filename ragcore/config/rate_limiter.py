"""
Rate limiter configuration settings.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class RateLimitConfig:
    """Retry and throttling settings shared by provider calls."""
    max_retries: int = int(os.getenv('PROVIDER_MAX_RETRIES', 3))
    initial_delay: float = float(os.getenv('PROVIDER_RETRY_DELAY', 1.5))
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0
    batch_delay: float = float(os.getenv('EMBEDDING_BATCH_DELAY', 1.0))  # seconds between embedding batches

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.initial_delay < 0 or self.batch_delay < 0:
            raise ValueError("delays cannot be negative")
