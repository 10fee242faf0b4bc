"""
Utility functions for secretary-sync.
"""

from .io import safe_read_json, safe_write_json, atomic_write, safe_remove
from .date import utc_now, to_iso, parse_iso_datetime, parse_date, format_date, date_key
from .text import tokenize, normalize_text, leading_minutes

__all__ = [
    # I/O utilities
    'safe_read_json',
    'safe_write_json',
    'atomic_write',
    'safe_remove',
    # Date utilities
    'utc_now',
    'to_iso',
    'parse_iso_datetime',
    'parse_date',
    'format_date',
    'date_key',
    # Text utilities
    'tokenize',
    'normalize_text',
    'leading_minutes',
]
