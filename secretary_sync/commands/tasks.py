"""Task commands - add, list, search, complete and delete tasks."""

import asyncio
import logging
from typing import Optional

from ..context import AppContext
from ..core.models import Task
from ..tasks.service import Pagination


def format_task(task: Task) -> str:
    """One-line rendering used by the list and search commands."""
    mark = "x" if task.completed else " "
    line = f"[{mark}] {task.text}  ({task.section.value}, {task.priority.value})"
    if task.date:
        line += f" due {task.date.isoformat()}"
    return f"{line}  {task.id}"


class AddCommand:
    """Command for creating a task."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    async def _add(self, text: str, section: str, priority: str, date: Optional[str]) -> Task:
        await self.context.tasks.load_all()
        data = {"text": text, "section": section, "priority": priority}
        if date:
            data["date"] = date
        return await self.context.tasks.create_task(data)

    def run(self, text: str, section: str = "undated", priority: str = "medium",
            date: Optional[str] = None) -> bool:
        task = asyncio.run(self._add(text, section, priority, date))
        print(f"✓ {format_task(task)}")

        last_write = self.context.tasks.last_write
        if last_write is not None and last_write.key.endswith(task.id):
            if last_write.at_risk:
                print("⚠️  Local storage is full; the task will only survive if it reaches the remote store.")
            elif not last_write.synced:
                print("Saved locally, will sync when the remote store is reachable.")
        return True


class ListCommand:
    """Command for listing tasks with filters and pagination."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self, section: Optional[str] = None, priority: Optional[str] = None,
            completed: Optional[str] = None, page_size: Optional[int] = None,
            cursor: Optional[str] = None) -> bool:
        asyncio.run(self.context.tasks.load_all())

        criteria = {"section": section, "priority": priority, "completed": completed}
        page = self.context.tasks.get_filtered(
            criteria, Pagination(page_size=page_size or self.context.config.page_size, cursor=cursor)
        )

        if not page.tasks:
            print("No tasks found.")
            return True

        for task in page.tasks:
            print(format_task(task))
        print(f"\n{len(page.tasks)} of {page.total} tasks")
        if page.has_more:
            print(f"Next page: --cursor {page.cursor}")
        return True


class SearchCommand:
    """Command for prefix search over task text."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self, query: str) -> bool:
        asyncio.run(self.context.tasks.load_all())
        results = self.context.tasks.search(query)
        if not results:
            print(f"No tasks match '{query}'.")
            return True
        for task in results:
            print(format_task(task))
        return True


class CompleteCommand:
    """Command for marking a task completed (or not)."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    async def _complete(self, task_id: str, completed: bool):
        await self.context.tasks.load_all()
        return await self.context.tasks.complete_task(task_id, completed)

    def run(self, task_id: str, undo: bool = False) -> bool:
        result = asyncio.run(self._complete(task_id, not undo))
        state = "not completed" if undo else "completed"
        print(f"✓ Marked {task_id} as {state} ({result.status.value})")
        return True


class DeleteCommand:
    """Command for deleting a task."""

    def __init__(self, context: AppContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    async def _delete(self, task_id: str) -> bool:
        await self.context.tasks.load_all()
        return await self.context.tasks.delete_task(task_id)

    def run(self, task_id: str) -> bool:
        if not asyncio.run(self._delete(task_id)):
            print(f"Task not found: {task_id}")
            return False
        print(f"✓ Deleted {task_id}")
        return True
