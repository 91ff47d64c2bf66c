"""FastAPI dependencies for authentication and storage."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.schemas.auth import UserResponse
from src.schemas.task import TaskResponse
from src.services.auth import decode_access_token
from src.services.task_store import TaskStore

security = HTTPBearer()


def get_store(request: Request) -> TaskStore:
    """The task store opened at startup."""
    return request.app.state.store


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    store: Annotated[TaskStore, Depends(get_store)],
) -> UserResponse:
    """Get the current authenticated user from JWT token."""
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await store.get_user(user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_visible_task(store: TaskStore, task_id: int, user: UserResponse) -> TaskResponse:
    """Get a task that the user owns or collaborates on."""
    task = await store.get_task(task_id)
    if task is None or not await store.is_task_visible(task_id, user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


def require_owner(task: TaskResponse, user: UserResponse, action: str) -> None:
    """Only the task owner may edit, delete or share it."""
    if task.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only the owner can {action} this task",
        )
