"""Task schemas."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskStatusFilter(StrEnum):
    """Which tasks a listing includes, by completion state."""

    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


class TaskCreate(BaseModel):
    """Create a new task."""

    title: str = Field(..., max_length=500)
    description: str | None = Field(None, max_length=2000)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        """Titles are trimmed and must not be empty."""
        value = value.strip()
        if not value:
            raise ValueError("Please enter a task title")
        return value


class TaskUpdate(TaskCreate):
    """Replace a task's title, description and completion flag."""

    completed: bool = False


class TaskCompletionUpdate(BaseModel):
    """Set a task's completion flag."""

    completed: bool


class TaskResponse(BaseModel):
    """Task as seen by a user, with the owner joined in."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    completed: bool
    owner_id: int
    owner_name: str | None
    owner_email: str | None


class TaskCounts(BaseModel):
    """Pending/completed tallies for a user's visible tasks."""

    total: int = 0
    pending: int = 0
    completed: int = 0


class TaskShareCreate(BaseModel):
    """Share a task with another user."""

    user_email: str = Field(..., max_length=255)

    @field_validator("user_email")
    @classmethod
    def email_not_blank(cls, value: str) -> str:
        """Surrounding whitespace is dropped; the rest is matched verbatim."""
        value = value.strip()
        if not value:
            raise ValueError("Please enter an email address")
        return value
