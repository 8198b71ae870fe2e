"""Task CRUD routes for the signed-in user."""

from fastapi import APIRouter
from fastapi.responses import Response

from api.base import success_response
from core.models import TaskCreate, TaskUpdate
from core.services.task_service import TaskService


def _dump(task) -> dict:
    return task.model_dump(mode="json", by_alias=True)


def create_tasks_router(task_service: TaskService) -> APIRouter:
    """Create tasks router with injected service.

    Ownership checks live in TaskService; errors are mapped by the global
    handlers in api/errors.py.
    """
    router = APIRouter(prefix="/tasks", tags=["tasks"])

    @router.get("")
    def list_tasks():
        tasks = task_service.list_for_author()
        return success_response([_dump(t) for t in tasks]).model_dump(mode="json", exclude_none=True)

    @router.post("", status_code=201)
    def create_task(body: TaskCreate):
        task = task_service.create(body)
        return success_response(_dump(task)).model_dump(mode="json", exclude_none=True)

    @router.get("/{task_id}")
    def get_task(task_id: str):
        task = task_service.get(task_id)
        return success_response(_dump(task)).model_dump(mode="json", exclude_none=True)

    @router.patch("/{task_id}")
    def update_task(task_id: str, body: TaskUpdate):
        task = task_service.update(task_id, body)
        return success_response(_dump(task)).model_dump(mode="json", exclude_none=True)

    @router.delete("/{task_id}", status_code=204)
    def delete_task(task_id: str):
        task_service.delete(task_id)
        return Response(status_code=204)

    return router
