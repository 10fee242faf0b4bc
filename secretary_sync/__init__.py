"""
secretary-sync - local-first task store with remote synchronization.

Keeps tasks, schedules and settings in a durable local cache, mirrors
them to a remote document store when it is reachable, and serves
filtering and search from an in-memory index.
"""

from .context import AppContext, load_remote_client
from .core import StoreConfig, Task
from .index import FilterCriteria, TaskIndexEngine
from .sync import SyncCoordinator
from .tasks import Pagination, ScheduleService, TaskService

__version__ = "0.1.0"

__all__ = [
    'AppContext',
    'load_remote_client',
    'StoreConfig',
    'Task',
    'FilterCriteria',
    'TaskIndexEngine',
    'SyncCoordinator',
    'TaskService',
    'ScheduleService',
    'Pagination',
]
