"""In-memory task index."""

from .engine import FilterCriteria, TaskIndexEngine
from .filter_cache import FilterCache

__all__ = ['TaskIndexEngine', 'FilterCriteria', 'FilterCache']
