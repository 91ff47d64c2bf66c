"""Task store: users, tasks and collaboration links behind one async facade."""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from src.database import (
    IN_MEMORY_URL,
    build_engine,
    build_session_factory,
    init_db,
    is_in_memory_url,
)
from src.exceptions import DuplicateEmail, StorageUnavailable, TaskNotFound, UserNotFound
from src.models.task import Task, TaskCollaborator
from src.models.user import User
from src.schemas.auth import UserResponse
from src.schemas.task import TaskCounts, TaskResponse, TaskStatusFilter
from src.services.auth import get_password_hash, verify_password

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TaskStore:
    """Data-access layer for users, tasks and task sharing.

    Every public method is a coroutine; the blocking database work runs on a
    worker thread. Each unit of work (one session, one commit) holds a
    store-wide lock, so a read-modify-write cycle never interleaves with
    another one issued against the same store.
    """

    def __init__(self, engine: Engine, *, persistent: bool = True):
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._lock = threading.Lock()
        self.persistent = persistent

    @classmethod
    def from_url(cls, database_url: str) -> "TaskStore":
        """Build a store for a database URL without touching the database yet."""
        try:
            engine = build_engine(database_url)
        except (SQLAlchemyError, ImportError) as e:
            raise StorageUnavailable(f"Cannot configure task storage: {e}") from e
        return cls(engine, persistent=not is_in_memory_url(database_url))

    @classmethod
    def in_memory(cls) -> "TaskStore":
        """Build a non-persistent store, used for tests and degraded mode."""
        return cls(build_engine(IN_MEMORY_URL), persistent=False)

    @property
    def url(self) -> str:
        """Database URL with any password masked."""
        return self._engine.url.render_as_string(hide_password=True)

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    # ---- low-level helpers ----

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(fn, *args)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """One serialized unit of work: commit on success, roll back on any error."""
        with self._lock:
            session = self._session_factory()
            try:
                yield session
                session.commit()
            except IntegrityError:
                session.rollback()
                raise
            except DBAPIError as e:
                # Locked, missing or corrupt database
                session.rollback()
                logger.error(f"Task storage failure: {e}")
                raise StorageUnavailable(str(e)) from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    @staticmethod
    def _task_rows(session: Session) -> Query:
        """Task columns with the owner's name and email joined in."""
        return session.query(
            Task.id,
            Task.title,
            Task.description,
            Task.completed,
            Task.owner_id,
            User.name.label("owner_name"),
            User.email.label("owner_email"),
        ).outerjoin(User, Task.owner_id == User.id)

    @staticmethod
    def _visible_to(user_id: int):
        """Filter clause: tasks the user owns or collaborates on."""
        shared_task_ids = select(TaskCollaborator.task_id).where(
            TaskCollaborator.user_id == user_id
        )
        return or_(Task.owner_id == user_id, Task.id.in_(shared_task_ids))

    # ---- schema ----

    async def initialize(self) -> None:
        """Create the tables if they are missing. Safe to call repeatedly."""
        await self._run(self._initialize)

    def _initialize(self) -> None:
        with self._lock:
            try:
                init_db(self._engine)
            except SQLAlchemyError as e:
                logger.error(f"Cannot open task storage at {self.url}: {e}")
                raise StorageUnavailable(f"Cannot open task storage: {e}") from e
        logger.info(f"Task store ready at {self.url} (persistent={self.persistent})")

    # ---- users ----

    async def create_user(self, name: str, email: str, password: str) -> int:
        """Register a user and return the new id.

        The password is hashed before it reaches the database. Emails are
        matched exactly as given, so ``a@x.io`` and ``A@x.io`` are different
        users.
        """
        return await self._run(self._create_user, name, email, password)

    def _create_user(self, name: str, email: str, password: str) -> int:
        password_hash = get_password_hash(password)
        with self._session() as session:
            if session.query(User.id).filter(User.email == email).first():
                raise DuplicateEmail(email)
            user = User(name=name, email=email, password_hash=password_hash)
            session.add(user)
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateEmail(email) from e
            user_id = user.id
        logger.info(f"Registered user {user_id}")
        return user_id

    async def find_user_by_email(self, email: str) -> UserResponse | None:
        """Exact-match lookup; ``None`` when nobody has that email."""
        return await self._run(self._find_user_by_email, email)

    def _find_user_by_email(self, email: str) -> UserResponse | None:
        with self._session() as session:
            user = session.query(User).filter(User.email == email).first()
            return UserResponse.model_validate(user) if user else None

    async def get_user(self, user_id: int) -> UserResponse | None:
        return await self._run(self._get_user, user_id)

    def _get_user(self, user_id: int) -> UserResponse | None:
        with self._session() as session:
            user = session.get(User, user_id)
            return UserResponse.model_validate(user) if user else None

    async def authenticate_user(self, email: str, password: str) -> UserResponse | None:
        """Return the user if the email exists and the password matches."""
        return await self._run(self._authenticate_user, email, password)

    def _authenticate_user(self, email: str, password: str) -> UserResponse | None:
        with self._session() as session:
            user = session.query(User).filter(User.email == email).first()
            if not user:
                return None
            password_hash = user.password_hash
            found = UserResponse.model_validate(user)
        # bcrypt is slow; verify outside the lock
        if not verify_password(password, password_hash):
            return None
        return found

    async def list_all_users(self) -> list[UserResponse]:
        """Every registered user. Callers filter out whoever they don't want to offer."""
        return await self._run(self._list_all_users)

    def _list_all_users(self) -> list[UserResponse]:
        with self._session() as session:
            users = session.query(User).order_by(User.id).all()
            return [UserResponse.model_validate(u) for u in users]

    # ---- tasks ----

    async def create_task(self, title: str, description: str | None, owner_id: int) -> int:
        """Create a pending task owned by ``owner_id`` and return its id."""
        return await self._run(self._create_task, title, description, owner_id)

    def _create_task(self, title: str, description: str | None, owner_id: int) -> int:
        with self._session() as session:
            task = Task(title=title, description=description, completed=False, owner_id=owner_id)
            session.add(task)
            try:
                session.flush()
            except IntegrityError as e:
                # Only the owner foreign key can fail here
                raise UserNotFound(owner_id) from e
            task_id = task.id
        logger.info(f"Created task {task_id} for user {owner_id}")
        return task_id

    async def get_task(self, task_id: int) -> TaskResponse | None:
        return await self._run(self._get_task, task_id)

    def _get_task(self, task_id: int) -> TaskResponse | None:
        with self._session() as session:
            row = self._task_rows(session).filter(Task.id == task_id).first()
            return TaskResponse.model_validate(row) if row else None

    async def list_tasks_for_user(
        self, user_id: int, status: TaskStatusFilter = TaskStatusFilter.ALL
    ) -> list[TaskResponse]:
        """Tasks the user owns or collaborates on.

        Pending tasks come before completed ones; within each group the most
        recently created task (highest id) comes first.
        """
        return await self._run(self._list_tasks_for_user, user_id, TaskStatusFilter(status))

    def _list_tasks_for_user(self, user_id: int, status: TaskStatusFilter) -> list[TaskResponse]:
        with self._session() as session:
            query = self._task_rows(session).filter(self._visible_to(user_id))
            if status == TaskStatusFilter.PENDING:
                query = query.filter(Task.completed.is_(False))
            elif status == TaskStatusFilter.COMPLETED:
                query = query.filter(Task.completed.is_(True))
            rows = query.order_by(Task.completed.asc(), Task.id.desc()).all()
        logger.debug(f"Loaded {len(rows)} {status} tasks for user {user_id}")
        return [TaskResponse.model_validate(r) for r in rows]

    async def count_tasks_for_user(self, user_id: int) -> TaskCounts:
        """Pending and completed tallies over the tasks the user can see."""
        return await self._run(self._count_tasks_for_user, user_id)

    def _count_tasks_for_user(self, user_id: int) -> TaskCounts:
        with self._session() as session:
            rows = (
                session.query(Task.completed, func.count(Task.id))
                .filter(self._visible_to(user_id))
                .group_by(Task.completed)
                .all()
            )
        counts = {bool(completed): n for completed, n in rows}
        pending = counts.get(False, 0)
        completed = counts.get(True, 0)
        return TaskCounts(total=pending + completed, pending=pending, completed=completed)

    async def is_task_visible(self, task_id: int, user_id: int) -> bool:
        return await self._run(self._is_task_visible, task_id, user_id)

    def _is_task_visible(self, task_id: int, user_id: int) -> bool:
        with self._session() as session:
            found = (
                session.query(Task.id)
                .filter(Task.id == task_id, self._visible_to(user_id))
                .first()
            )
            return found is not None

    async def update_task(
        self, task_id: int, title: str, description: str | None, completed: bool
    ) -> None:
        """Replace title, description and completion flag. The owner never changes."""
        await self._run(self._update_task, task_id, title, description, completed)

    def _update_task(
        self, task_id: int, title: str, description: str | None, completed: bool
    ) -> None:
        with self._session() as session:
            task = session.get(Task, task_id)
            if task is None:
                raise TaskNotFound(task_id)
            task.title = title
            task.description = description
            task.completed = bool(completed)
        logger.info(f"Updated task {task_id}")

    async def set_task_completion(self, task_id: int, completed: bool) -> None:
        await self._run(self._set_task_completion, task_id, completed)

    def _set_task_completion(self, task_id: int, completed: bool) -> None:
        with self._session() as session:
            task = session.get(Task, task_id)
            if task is None:
                raise TaskNotFound(task_id)
            task.completed = bool(completed)
        logger.debug(f"Task {task_id} completed={bool(completed)}")

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task and its collaboration links in one transaction.

        Deleting a missing task is not an error; the return value tells
        whether anything was removed.
        """
        return await self._run(self._delete_task, task_id)

    def _delete_task(self, task_id: int) -> bool:
        with self._session() as session:
            links = (
                session.query(TaskCollaborator)
                .filter(TaskCollaborator.task_id == task_id)
                .delete(synchronize_session=False)
            )
            removed = (
                session.query(Task).filter(Task.id == task_id).delete(synchronize_session=False)
            )
        if removed:
            logger.info(f"Deleted task {task_id} and {links} collaboration link(s)")
        return bool(removed)

    # ---- sharing ----

    async def share_task(self, task_id: int, collaborator_email: str) -> UserResponse:
        """Give the user with ``collaborator_email`` access to the task.

        Sharing twice with the same user leaves a single link. Returns the
        collaborator.
        """
        return await self._run(self._share_task, task_id, collaborator_email)

    def _share_task(self, task_id: int, collaborator_email: str) -> UserResponse:
        with self._session() as session:
            user = session.query(User).filter(User.email == collaborator_email).first()
            if user is None:
                raise UserNotFound(collaborator_email)
            if session.get(Task, task_id) is None:
                raise TaskNotFound(task_id)

            existing = (
                session.query(TaskCollaborator.id)
                .filter(TaskCollaborator.task_id == task_id, TaskCollaborator.user_id == user.id)
                .first()
            )
            if existing is None:
                session.add(TaskCollaborator(task_id=task_id, user_id=user.id))
                logger.info(f"Shared task {task_id} with user {user.id}")
            collaborator = UserResponse.model_validate(user)
        return collaborator

    async def unshare_task(self, task_id: int, user_id: int) -> bool:
        """Remove one collaborator from a task. Missing links are ignored."""
        return await self._run(self._unshare_task, task_id, user_id)

    def _unshare_task(self, task_id: int, user_id: int) -> bool:
        with self._session() as session:
            removed = (
                session.query(TaskCollaborator)
                .filter(TaskCollaborator.task_id == task_id, TaskCollaborator.user_id == user_id)
                .delete(synchronize_session=False)
            )
        if removed:
            logger.info(f"Removed user {user_id} from task {task_id}")
        return bool(removed)

    async def list_collaborators(self, task_id: int) -> list[UserResponse]:
        """Users linked to the task, in the order they were added."""
        return await self._run(self._list_collaborators, task_id)

    def _list_collaborators(self, task_id: int) -> list[UserResponse]:
        with self._session() as session:
            users = (
                session.query(User)
                .join(TaskCollaborator, TaskCollaborator.user_id == User.id)
                .filter(TaskCollaborator.task_id == task_id)
                .order_by(TaskCollaborator.id)
                .all()
            )
            return [UserResponse.model_validate(u) for u in users]


async def open_task_store(database_url: str, *, allow_degraded: bool = True) -> TaskStore:
    """Open and initialize the store for ``database_url``.

    When the database cannot be opened and ``allow_degraded`` is set, an
    in-memory store is returned instead. Its ``persistent`` flag is False so
    callers can tell nothing will survive a restart.
    """
    store = None
    try:
        store = TaskStore.from_url(database_url)
        await store.initialize()
        return store
    except StorageUnavailable:
        if store is not None:
            store.close()
        if not allow_degraded:
            raise
        logger.warning("Task storage is unavailable; continuing with an in-memory store")

    fallback = TaskStore.in_memory()
    await fallback.initialize()
    return fallback
