"""Task API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.dependencies import get_current_user, get_store, get_visible_task, require_owner
from src.exceptions import TaskNotFound, UserNotFound
from src.schemas.auth import UserResponse
from src.schemas.task import (
    TaskCompletionUpdate,
    TaskCounts,
    TaskCreate,
    TaskResponse,
    TaskShareCreate,
    TaskStatusFilter,
    TaskUpdate,
)
from src.services.task_store import TaskStore

router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])


def task_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")


@router.get("", response_model=list[TaskResponse])
async def get_tasks(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
    status_filter: TaskStatusFilter = Query(
        default=TaskStatusFilter.ALL, alias="status", description="all, pending or completed"
    ),
):
    """Get tasks owned by or shared with the current user, pending first."""
    return await store.list_tasks_for_user(current_user.id, status_filter)


@router.get("/summary", response_model=TaskCounts)
async def get_task_summary(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Get pending/completed counts for the current user's tasks."""
    return await store.count_tasks_for_user(current_user.id)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Create a new task owned by the current user."""
    task_id = await store.create_task(task_data.title, task_data.description, current_user.id)
    task = await store.get_task(task_id)
    if task is None:
        raise task_not_found()
    return task


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Get a specific task."""
    return await get_visible_task(store, task_id, current_user)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    task_data: TaskUpdate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Replace a task's title, description and completion flag (owner only)."""
    task = await get_visible_task(store, task_id, current_user)
    require_owner(task, current_user, "edit")

    try:
        await store.update_task(
            task_id, task_data.title, task_data.description, task_data.completed
        )
    except TaskNotFound as e:
        raise task_not_found() from e

    return await get_visible_task(store, task_id, current_user)


@router.patch("/{task_id}/completion", response_model=TaskResponse)
async def set_task_completion(
    task_id: int,
    completion: TaskCompletionUpdate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Mark a task done or pending. Collaborators may do this too."""
    await get_visible_task(store, task_id, current_user)

    try:
        await store.set_task_completion(task_id, completion.completed)
    except TaskNotFound as e:
        raise task_not_found() from e

    return await get_visible_task(store, task_id, current_user)


@router.post("/{task_id}/toggle", response_model=TaskResponse)
async def toggle_task(
    task_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Flip a task between pending and done."""
    task = await get_visible_task(store, task_id, current_user)

    try:
        await store.set_task_completion(task_id, not task.completed)
    except TaskNotFound as e:
        raise task_not_found() from e

    return await get_visible_task(store, task_id, current_user)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Delete a task and its collaboration links (owner only)."""
    task = await get_visible_task(store, task_id, current_user)
    require_owner(task, current_user, "delete")

    await store.delete_task(task_id)


@router.post("/{task_id}/share", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def share_task(
    task_id: int,
    share_data: TaskShareCreate,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Share a task with another user (owner only)."""
    task = await get_visible_task(store, task_id, current_user)
    require_owner(task, current_user, "share")

    if share_data.user_email == task.owner_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot share with task owner",
        )

    try:
        return await store.share_task(task_id, share_data.user_email)
    except UserNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        ) from e
    except TaskNotFound as e:
        raise task_not_found() from e


@router.delete("/{task_id}/share/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unshare_task(
    task_id: int,
    user_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Remove a collaborator from a task (owner only)."""
    task = await get_visible_task(store, task_id, current_user)
    require_owner(task, current_user, "share")

    await store.unshare_task(task_id, user_id)


@router.get("/{task_id}/collaborators", response_model=list[UserResponse])
async def get_collaborators(
    task_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Get the users a task is shared with."""
    await get_visible_task(store, task_id, current_user)
    return await store.list_collaborators(task_id)


@router.get("/{task_id}/share-targets", response_model=list[UserResponse])
async def get_share_targets(
    task_id: int,
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Get users the task could be shared with: everyone but the caller and the owner."""
    task = await get_visible_task(store, task_id, current_user)
    users = await store.list_all_users()
    return [u for u in users if u.id not in (current_user.id, task.owner_id)]
