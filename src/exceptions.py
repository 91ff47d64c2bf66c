"""Errors raised by the task store."""


class TaskStoreError(Exception):
    """Base class for every failure the task store reports."""


class StorageUnavailable(TaskStoreError):
    """The backing database could not be opened or used."""


class DuplicateEmail(TaskStoreError):
    """A user with this email is already registered."""

    def __init__(self, email: str):
        super().__init__(f"Email already registered: {email}")
        self.email = email


class UserNotFound(TaskStoreError):
    """No user matches the given email or id."""

    def __init__(self, identifier: str | int):
        super().__init__(f"User not found: {identifier}")
        self.identifier = identifier


class NotFound(TaskStoreError):
    """A referenced record does not exist."""


class TaskNotFound(NotFound):
    """No task has the given id."""

    def __init__(self, task_id: int):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id
