"""Task and collaboration models."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from src.database import Base
from src.models.mixins import TimestampMixin


class Task(Base, TimestampMixin):
    """A task owned by exactly one user."""

    __tablename__ = "tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    description = Column(String, nullable=True)
    completed = Column(Boolean, default=False, nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)


class TaskCollaborator(Base):
    """Collaboration link granting a user access to someone else's task.

    Links go away with their task through ``ON DELETE CASCADE``.
    """

    __tablename__ = "collaborators"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_collaborator_task_user"),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
