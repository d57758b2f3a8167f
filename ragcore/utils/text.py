"""
Text processing utilities.
"""

import hashlib
import logging
import re

logger = logging.getLogger(__name__)

_MULTI_NEWLINE = re.compile(r"\n{3,}")
_WHITESPACE_RUN = re.compile(r"\s{2,}")
_BLANK_LINES = re.compile(r"\n{2,}")


def sanitize_text(text: str) -> str:
    """Clean text for PostgreSQL storage with validation."""
    if not text or not isinstance(text, str):
        return ""

    # Remove null bytes
    text = text.replace('\x00', '')

    # Replace problematic characters
    text = ''.join(
        char for char in text
        if ord(char) >= 32 or char in '\n\r\t'
    )
    return text.strip()


def normalize_whitespace(text: str) -> str:
    """Normalize line endings, collapse 3+ newlines and whitespace runs, trim."""
    if not text:
        return ""
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = _MULTI_NEWLINE.sub('\n\n', text)
    text = _WHITESPACE_RUN.sub(' ', text)
    return text.strip()


def collapse_blank_lines(text: str) -> str:
    """Collapse consecutive newlines into one, as done before embedding."""
    return _BLANK_LINES.sub('\n', text or "").strip()


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def word_count(text: str) -> int:
    return len(text.split())


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Cut text to its first ``max_length`` characters plus ``suffix``."""
    if not text:
        return ""

    text = str(text).strip()
    if len(text) <= max_length:
        return text
    return text[:max_length] + suffix
