"""Pydantic schemas for API requests and responses."""

from src.schemas.auth import AuthResponse, UserLogin, UserRegister, UserResponse
from src.schemas.task import (
    TaskCompletionUpdate,
    TaskCounts,
    TaskCreate,
    TaskResponse,
    TaskShareCreate,
    TaskStatusFilter,
    TaskUpdate,
)

__all__ = [
    "UserRegister",
    "UserLogin",
    "UserResponse",
    "AuthResponse",
    "TaskCreate",
    "TaskUpdate",
    "TaskCompletionUpdate",
    "TaskResponse",
    "TaskCounts",
    "TaskShareCreate",
    "TaskStatusFilter",
]
