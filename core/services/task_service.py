"""
Task service for the signed-in user's board.

Every operation acts as the user in the current user context; a task is
readable and writable only by its author.
"""

import logging

from pydantic import ValidationError

from clients.record_store import RecordStore
from core.exceptions import (
    EmptyTaskUpdateError,
    TaskAccessDeniedError,
    TaskNotFoundError,
    TaskRecordError,
)
from core.models import Task, TaskCreate, TaskUpdate
from utils.record_id import RecordId
from utils.timezone import now_utc, to_iso
from utils.user_context import get_current_user_id

logger = logging.getLogger(__name__)


class TaskService:
    """Service for task operations."""

    COLLECTION = "task"

    def __init__(self, store: RecordStore):
        self.store = store

    def _to_task(self, record: dict) -> Task:
        try:
            return Task.model_validate(record)
        except ValidationError as e:
            logger.error(f"Task record {record.get('id')} failed validation: {e}")
            raise TaskRecordError("Stored task record is malformed") from e

    def create(self, data: TaskCreate) -> Task:
        """
        Create a task authored by the current user.

        Args:
            data: Task creation data

        Returns:
            Created task; createdAt and updatedAt are the same instant.
        """
        author = get_current_user_id()
        now = to_iso(now_utc())

        record = self.store.create(
            self.COLLECTION,
            {
                **data.model_dump(mode="json", by_alias=True, exclude_none=True),
                "author": author,
                "createdAt": now,
                "updatedAt": now,
            },
        )

        task = self._to_task(record)
        logger.info(f"Task {task.id} created by {author}")
        return task

    def list_for_author(self) -> list[Task]:
        """Tasks of the current user, newest first."""
        records = self.store.find(
            self.COLLECTION,
            {"author": get_current_user_id()},
            order_by="createdAt",
            descending=True,
        )
        return [self._to_task(record) for record in records]

    def _load_owned(self, task_id: str) -> tuple[RecordId, Task]:
        try:
            record_id = RecordId.parse(task_id, self.COLLECTION)
        except ValueError:
            raise TaskNotFoundError(task_id)

        record = self.store.select(record_id)
        if record is None:
            raise TaskNotFoundError(str(record_id))

        task = self._to_task(record)
        user_id = get_current_user_id()
        if task.author != user_id:
            logger.warning(f"User {user_id} denied access to {task.id}")
            raise TaskAccessDeniedError(task.id)
        return record_id, task

    def get(self, task_id: str) -> Task:
        """
        Get one of the current user's tasks by "task:<key>" or bare key.

        Raises:
            TaskNotFoundError: No such task
            TaskAccessDeniedError: Task belongs to another user
        """
        _, task = self._load_owned(task_id)
        return task

    def update(self, task_id: str, data: TaskUpdate) -> Task:
        """
        Apply a partial update. Only fields present in the request change;
        an explicit null clears description.

        Raises:
            EmptyTaskUpdateError: Nothing to update
            TaskNotFoundError: No such task
            TaskAccessDeniedError: Task belongs to another user
        """
        updates = data.model_dump(mode="json", by_alias=True, exclude_unset=True)
        if not updates:
            raise EmptyTaskUpdateError()

        record_id, current = self._load_owned(task_id)

        # Clock skew must not move updatedAt backwards
        updated_at = max(now_utc(), current.updated_at)
        updates["updatedAt"] = to_iso(updated_at)

        record = self.store.merge(record_id, updates)
        if record is None:
            raise TaskNotFoundError(str(record_id))
        return self._to_task(record)

    def delete(self, task_id: str) -> None:
        """
        Delete one of the current user's tasks.

        Raises:
            TaskNotFoundError: No such task
            TaskAccessDeniedError: Task belongs to another user
        """
        record_id, task = self._load_owned(task_id)
        if not self.store.delete(record_id):
            raise TaskNotFoundError(str(record_id))
        logger.info(f"Task {task.id} deleted")
