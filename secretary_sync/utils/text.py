"""
Text normalization and tokenization utilities.
"""

import re
from typing import List, Optional

_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')

MIN_TOKEN_LENGTH = 3


def tokenize(text: Optional[str]) -> List[str]:
    """
    Tokenize text for the search index.

    Lowercases, replaces punctuation with spaces, splits on whitespace and
    drops tokens of two characters or fewer. Order is preserved and
    repeated words are kept; callers that need a set build one.

    Args:
        text: Text to tokenize

    Returns:
        List of normalized tokens
    """
    if not text:
        return []

    text = _PUNCTUATION.sub(' ', text.lower())
    return [t for t in text.split() if len(t) >= MIN_TOKEN_LENGTH]


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize task text for duplicate detection.

    Case and surrounding/inner whitespace differences are ignored, all
    other characters are significant.
    """
    if not text:
        return ""
    return _WHITESPACE.sub(' ', text.lower().strip())


def leading_minutes(value: Optional[str]) -> int:
    """Return the first integer found in a free-text duration ("30-45 minutes" -> 30)."""
    if not value:
        return 0
    match = re.search(r'\d+', str(value))
    return int(match.group()) if match else 0
