"""Caller-facing task and schedule services."""

from .schedules import ScheduleService
from .service import LoadReport, Pagination, TaskPage, TaskService

__all__ = ['TaskService', 'Pagination', 'TaskPage', 'LoadReport', 'ScheduleService']
