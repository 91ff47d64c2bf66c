"""Authentication API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from src.api.dependencies import get_current_user, get_store
from src.exceptions import DuplicateEmail
from src.schemas.auth import AuthResponse, UserLogin, UserRegister, UserResponse
from src.services.auth import create_access_token
from src.services.task_store import TaskStore

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserRegister,
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Register a new user."""
    try:
        user_id = await store.create_user(user_data.name, user_data.email, user_data.password)
    except DuplicateEmail as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        ) from e

    access_token = create_access_token(user_id)

    return AuthResponse(
        access_token=access_token,
        user=UserResponse(id=user_id, name=user_data.name, email=user_data.email),
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: UserLogin,
    store: Annotated[TaskStore, Depends(get_store)],
):
    """Login with email and password."""
    user = await store.authenticate_user(credentials.email, credentials.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(user.id)

    return AuthResponse(access_token=access_token, user=user)


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
):
    """Get current user information."""
    return current_user


@router.post("/logout")
async def logout(
    current_user: Annotated[UserResponse, Depends(get_current_user)],
):
    """Logout (client should discard token)."""
    return {"message": "Logged out successfully"}
