"""Typed exceptions for task operations."""


class TaskError(Exception):
    """Base class for task errors."""


class TaskNotFoundError(TaskError):
    """No task with this id. Reported to clients as 404."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


class TaskAccessDeniedError(TaskError):
    """Task belongs to another user. Reported to clients as 403."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} belongs to another user")


class TaskRecordError(TaskError):
    """Stored task record does not match the Task model."""


class EmptyTaskUpdateError(TaskError):
    """Update carried no fields. Reported to clients as 400."""

    def __init__(self):
        super().__init__("No fields to update")
