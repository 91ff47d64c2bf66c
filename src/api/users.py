"""User directory endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from src.api.dependencies import get_current_user, get_store
from src.schemas.auth import UserResponse
from src.services.task_store import TaskStore

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def get_users(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Get every registered user."""
    return await store.list_all_users()
