"""
Command implementations for secretary-sync.
"""

from .backup import ExportCommand, ImportCommand
from .sync import DedupCommand, StatusCommand, SweepCommand
from .tasks import AddCommand, CompleteCommand, DeleteCommand, ListCommand, SearchCommand

__all__ = [
    'StatusCommand',
    'SweepCommand',
    'DedupCommand',
    'AddCommand',
    'ListCommand',
    'SearchCommand',
    'CompleteCommand',
    'DeleteCommand',
    'ExportCommand',
    'ImportCommand',
]
