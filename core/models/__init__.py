"""Core domain models."""

from core.models.task import Task, TaskCreate, TaskUpdate, TaskStatus, TaskLabel, TaskPriority

__all__ = [
    "Task", "TaskCreate", "TaskUpdate", "TaskStatus", "TaskLabel", "TaskPriority",
]
