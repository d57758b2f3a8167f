"""
Validation utilities for input checking.
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


def validate_numeric_range(
    value: float,
    min_value: float,
    max_value: float,
    param_name: str
) -> None:
    """Validate numeric value range."""
    if not min_value <= value <= max_value:
        raise ValueError(
            f"Parameter '{param_name}' must be between {min_value} and {max_value}"
        )


class InputValidator:
    """Utility class for input validation."""

    @staticmethod
    def validate_search_params(
        query: str,
        limit: int,
        threshold: float
    ) -> None:
        """Validate search parameters."""
        if not isinstance(query, str) or not query.strip():
            raise ValueError("Search query cannot be empty")

        if limit < 1:
            raise ValueError("Result limit must be positive")

        validate_numeric_range(threshold, 0.0, 1.0, "threshold")

    @staticmethod
    def validate_document_source(
        raw_content: Optional[str],
        file_path: Optional[str],
        file_type: Optional[str]
    ) -> None:
        """A document needs raw content, or a file path together with its type."""
        if raw_content is not None:
            return
        if not file_path or not file_type:
            raise ValueError(
                "Either raw_content or both file_path and file_type must be provided"
            )

    @staticmethod
    def validate_user_id(user_id: Any) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError("user_id is required")
