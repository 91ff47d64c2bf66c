"""Tests for the task store."""

import asyncio

import pytest

from src.exceptions import DuplicateEmail, StorageUnavailable, TaskNotFound, UserNotFound
from src.models.task import Task, TaskCollaborator
from src.models.user import User
from src.schemas.task import TaskStatusFilter
from src.services.task_store import TaskStore, open_task_store


async def make_user(store: TaskStore, name: str, email: str | None = None) -> int:
    return await store.create_user(name, email or f"{name.lower()}@example.com", "secret123")


def task_ids(tasks) -> list[int]:
    return [t.id for t in tasks]


class TestInitialize:
    """Tests for schema setup and storage failures."""

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, store):
        """Running initialize again keeps existing data."""
        user_id = await make_user(store, "Alice")

        await store.initialize()
        await store.initialize()

        users = await store.list_all_users()
        assert task_ids(users) == [user_id]

    @pytest.mark.asyncio
    async def test_data_survives_reopen(self, database_url, store):
        """A file-backed store is persistent across store instances."""
        user_id = await make_user(store, "Alice")
        task_id = await store.create_task("Write report", None, user_id)

        reopened = TaskStore.from_url(database_url)
        await reopened.initialize()
        try:
            assert reopened.persistent is True
            assert task_ids(await reopened.list_tasks_for_user(user_id)) == [task_id]
        finally:
            reopened.close()

    @pytest.mark.asyncio
    async def test_unopenable_database_raises_storage_unavailable(self, tmp_path):
        """A database in a missing directory cannot be opened."""
        broken = TaskStore.from_url(f"sqlite:///{tmp_path / 'missing' / 'tasks.db'}")
        try:
            with pytest.raises(StorageUnavailable):
                await broken.initialize()
        finally:
            broken.close()

    def test_unknown_driver_raises_storage_unavailable(self):
        """A URL naming an unknown dialect is reported as unavailable storage."""
        with pytest.raises(StorageUnavailable):
            TaskStore.from_url("nosuchdb://localhost/tasks")

    @pytest.mark.asyncio
    async def test_open_task_store_falls_back_to_memory(self, tmp_path):
        """Degraded mode keeps working but reports it is not persistent."""
        fallback = await open_task_store(f"sqlite:///{tmp_path / 'missing' / 'tasks.db'}")
        try:
            assert fallback.persistent is False
            user_id = await make_user(fallback, "Alice")
            await fallback.create_task("Still works", None, user_id)
            assert len(await fallback.list_tasks_for_user(user_id)) == 1
        finally:
            fallback.close()

    @pytest.mark.asyncio
    async def test_open_task_store_without_fallback_raises(self, tmp_path):
        """With degraded mode disabled the failure reaches the caller."""
        with pytest.raises(StorageUnavailable):
            await open_task_store(
                f"sqlite:///{tmp_path / 'missing' / 'tasks.db'}", allow_degraded=False
            )

    @pytest.mark.asyncio
    async def test_open_task_store_returns_persistent_store(self, database_url):
        """A healthy database URL is used as-is."""
        opened = await open_task_store(database_url)
        try:
            assert opened.persistent is True
        finally:
            opened.close()

    @pytest.mark.asyncio
    async def test_in_memory_store(self):
        """The in-memory store shares one database across calls."""
        memory_store = TaskStore.in_memory()
        await memory_store.initialize()
        try:
            user_id = await make_user(memory_store, "Alice")
            assert (await memory_store.find_user_by_email("alice@example.com")).id == user_id
            assert memory_store.persistent is False
        finally:
            memory_store.close()

    @pytest.mark.asyncio
    async def test_lost_table_raises_storage_unavailable(self, store):
        """A write against a table that vanished after startup is a storage failure."""
        user_id = await make_user(store, "Alice")
        TaskCollaborator.__table__.drop(store._engine)
        Task.__table__.drop(store._engine)

        with pytest.raises(StorageUnavailable):
            await store.create_task("Write report", None, user_id)

        # The failed unit of work was rolled back and released the store
        assert task_ids(await store.list_all_users()) == [user_id]

    @pytest.mark.asyncio
    async def test_corrupt_database_raises_storage_unavailable(self, tmp_path, store):
        """A file that is no longer a database is reported as unavailable storage."""
        user_id = await make_user(store, "Alice")
        store.close()
        (tmp_path / "tasks.db").write_bytes(b"definitely not a database file\n" * 256)

        with pytest.raises(StorageUnavailable):
            await store.create_task("Write report", None, user_id)


class TestUsers:
    """Tests for registration and lookup."""

    @pytest.mark.asyncio
    async def test_create_and_find_user(self, store):
        """A registered user can be found by email."""
        user_id = await store.create_user("Alice", "alice@example.com", "secret123")

        user = await store.find_user_by_email("alice@example.com")

        assert user is not None
        assert user.id == user_id
        assert user.name == "Alice"
        assert user.email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_find_missing_user_returns_none(self, store):
        """An unknown email is not an error."""
        assert await store.find_user_by_email("nobody@example.com") is None
        assert await store.get_user(42) is None

    @pytest.mark.asyncio
    async def test_duplicate_email_rejected(self, store):
        """Registering an email twice fails and keeps the first record."""
        user_id = await store.create_user("Alice", "alice@example.com", "secret123")

        with pytest.raises(DuplicateEmail):
            await store.create_user("Impostor", "alice@example.com", "other-pass")

        user = await store.find_user_by_email("alice@example.com")
        assert user.id == user_id
        assert user.name == "Alice"
        assert len(await store.list_all_users()) == 1

    @pytest.mark.asyncio
    async def test_email_match_is_case_sensitive(self, store):
        """Emails are stored and compared exactly as given."""
        lower = await store.create_user("Alice", "alice@example.com", "secret123")
        upper = await store.create_user("Alice Again", "Alice@example.com", "secret123")

        assert lower != upper
        assert (await store.find_user_by_email("Alice@example.com")).id == upper
        assert await store.find_user_by_email("ALICE@example.com") is None

    @pytest.mark.asyncio
    async def test_password_is_hashed(self, store):
        """The stored credential is not the plain password."""
        user_id = await store.create_user("Alice", "alice@example.com", "secret123")

        with store._session() as session:
            stored = session.get(User, user_id).password_hash

        assert stored != "secret123"
        assert stored.startswith("$2")

    @pytest.mark.asyncio
    async def test_authenticate_user(self, store):
        """Only the right password authenticates."""
        user_id = await store.create_user("Alice", "alice@example.com", "secret123")

        assert (await store.authenticate_user("alice@example.com", "secret123")).id == user_id
        assert await store.authenticate_user("alice@example.com", "wrong-pass") is None
        assert await store.authenticate_user("nobody@example.com", "secret123") is None

    @pytest.mark.asyncio
    async def test_list_all_users(self, store):
        """All users are listed, without credentials."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")

        users = await store.list_all_users()

        assert task_ids(users) == [alice, bob]
        assert set(users[0].model_dump()) == {"id", "name", "email"}


class TestTasks:
    """Tests for task creation, listing and updates."""

    @pytest.mark.asyncio
    async def test_created_task_is_pending_and_visible_to_owner(self, store):
        """A new task appears in the owner's list, not completed."""
        owner = await make_user(store, "Alice")

        task_id = await store.create_task("Buy milk", "2 litres", owner)

        tasks = await store.list_tasks_for_user(owner)
        assert task_ids(tasks) == [task_id]
        assert tasks[0].completed is False
        assert tasks[0].description == "2 litres"

    @pytest.mark.asyncio
    async def test_owner_fields_are_joined(self, store):
        """Tasks carry the owner's current name and email."""
        owner = await make_user(store, "Alice")
        task_id = await store.create_task("Buy milk", None, owner)

        task = await store.get_task(task_id)

        assert task.owner_id == owner
        assert task.owner_name == "Alice"
        assert task.owner_email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_get_missing_task_returns_none(self, store):
        """Looking up an unknown task id is not an error."""
        assert await store.get_task(999) is None

    @pytest.mark.asyncio
    async def test_create_task_for_unknown_owner(self, store):
        """The owner foreign key is enforced."""
        with pytest.raises(UserNotFound):
            await store.create_task("Orphan", None, 999)

    @pytest.mark.asyncio
    async def test_listing_order(self, store):
        """Pending tasks newest first, then completed tasks newest first."""
        owner = await make_user(store, "Alice")
        t1 = await store.create_task("T1", None, owner)
        t2 = await store.create_task("T2", None, owner)
        t3 = await store.create_task("T3", None, owner)

        await store.set_task_completion(t2, True)

        assert task_ids(await store.list_tasks_for_user(owner)) == [t3, t1, t2]

    @pytest.mark.asyncio
    async def test_status_filters(self, store):
        """Listings can be restricted to pending or completed tasks."""
        owner = await make_user(store, "Alice")
        t1 = await store.create_task("T1", None, owner)
        t2 = await store.create_task("T2", None, owner)
        t3 = await store.create_task("T3", None, owner)
        await store.set_task_completion(t1, True)
        await store.set_task_completion(t3, True)

        pending = await store.list_tasks_for_user(owner, TaskStatusFilter.PENDING)
        completed = await store.list_tasks_for_user(owner, "completed")

        assert task_ids(pending) == [t2]
        assert task_ids(completed) == [t3, t1]

    @pytest.mark.asyncio
    async def test_count_tasks_for_user(self, store):
        """Counts cover owned and shared tasks."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        own = await store.create_task("Mine", None, alice)
        await store.create_task("Also mine", None, alice)
        shared = await store.create_task("Bob's", None, bob)
        await store.share_task(shared, "alice@example.com")
        await store.set_task_completion(own, True)

        counts = await store.count_tasks_for_user(alice)

        assert counts.total == 3
        assert counts.pending == 2
        assert counts.completed == 1

    @pytest.mark.asyncio
    async def test_count_tasks_for_user_without_tasks(self, store):
        """A user with no tasks gets zero counts."""
        alice = await make_user(store, "Alice")

        counts = await store.count_tasks_for_user(alice)

        assert (counts.total, counts.pending, counts.completed) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_update_task_round_trip(self, store):
        """A full update is reflected on the next read; the owner is unchanged."""
        owner = await make_user(store, "Alice")
        task_id = await store.create_task("Draft", "first pass", owner)

        await store.update_task(task_id, "Final", "second pass", True)

        [task] = await store.list_tasks_for_user(owner)
        assert task.id == task_id
        assert task.title == "Final"
        assert task.description == "second pass"
        assert task.completed is True
        assert task.owner_id == owner

    @pytest.mark.asyncio
    async def test_update_can_clear_description(self, store):
        """The description is replaced, including with nothing."""
        owner = await make_user(store, "Alice")
        task_id = await store.create_task("Draft", "notes", owner)

        await store.update_task(task_id, "Draft", None, False)

        assert (await store.get_task(task_id)).description is None

    @pytest.mark.asyncio
    async def test_update_missing_task(self, store):
        """Updating an unknown task is reported."""
        with pytest.raises(TaskNotFound):
            await store.update_task(999, "Nope", None, False)

    @pytest.mark.asyncio
    async def test_set_completion_toggles_both_ways(self, store):
        """The completed flag moves between pending and done."""
        owner = await make_user(store, "Alice")
        task_id = await store.create_task("Toggle me", None, owner)

        await store.set_task_completion(task_id, True)
        assert (await store.get_task(task_id)).completed is True

        await store.set_task_completion(task_id, False)
        assert (await store.get_task(task_id)).completed is False

    @pytest.mark.asyncio
    async def test_set_completion_missing_task(self, store):
        """Toggling an unknown task is reported."""
        with pytest.raises(TaskNotFound):
            await store.set_task_completion(999, True)

    @pytest.mark.asyncio
    async def test_delete_missing_task_is_noop(self, store):
        """Deleting twice, or deleting nothing, is not an error."""
        owner = await make_user(store, "Alice")
        task_id = await store.create_task("Short lived", None, owner)

        assert await store.delete_task(task_id) is True
        assert await store.delete_task(task_id) is False
        assert await store.delete_task(999) is False

    @pytest.mark.asyncio
    async def test_ids_are_not_reused_after_delete(self, store):
        """Deleting the newest task does not free its id."""
        owner = await make_user(store, "Alice")
        await store.create_task("T1", None, owner)
        t2 = await store.create_task("T2", None, owner)

        await store.delete_task(t2)
        t3 = await store.create_task("T3", None, owner)

        assert t3 > t2

    @pytest.mark.asyncio
    async def test_concurrent_creates_get_distinct_ids(self, store):
        """Concurrent callers never receive the same id."""
        owner = await make_user(store, "Alice")

        ids = await asyncio.gather(
            *(store.create_task(f"Task {n}", None, owner) for n in range(20))
        )

        assert len(set(ids)) == 20
        assert len(await store.list_tasks_for_user(owner)) == 20


class TestSharing:
    """Tests for collaboration links and visibility."""

    @pytest.mark.asyncio
    async def test_shared_task_becomes_visible(self, store):
        """A collaborator sees the task only after it is shared."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        task_id = await store.create_task("Plan trip", None, alice)

        assert task_id not in task_ids(await store.list_tasks_for_user(bob))
        assert await store.is_task_visible(task_id, bob) is False

        collaborator = await store.share_task(task_id, "bob@example.com")

        assert collaborator.id == bob
        assert task_id in task_ids(await store.list_tasks_for_user(bob))
        assert await store.is_task_visible(task_id, bob) is True

    @pytest.mark.asyncio
    async def test_shared_task_keeps_owner_fields(self, store):
        """A collaborator sees who owns the task."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        task_id = await store.create_task("Plan trip", None, alice)
        await store.share_task(task_id, "bob@example.com")

        [task] = await store.list_tasks_for_user(bob)

        assert task.owner_id == alice
        assert task.owner_email == "alice@example.com"

    @pytest.mark.asyncio
    async def test_share_is_idempotent(self, store):
        """Sharing twice with the same user leaves one link."""
        alice = await make_user(store, "Alice")
        await make_user(store, "Bob")
        task_id = await store.create_task("Plan trip", None, alice)

        await store.share_task(task_id, "bob@example.com")
        await store.share_task(task_id, "bob@example.com")

        assert len(await store.list_collaborators(task_id)) == 1
        with store._session() as session:
            rows = session.query(TaskCollaborator).filter_by(task_id=task_id).count()
        assert rows == 1

    @pytest.mark.asyncio
    async def test_share_with_unknown_email(self, store):
        """An unknown email fails without leaving a partial link."""
        alice = await make_user(store, "Alice")
        task_id = await store.create_task("Plan trip", None, alice)

        with pytest.raises(UserNotFound):
            await store.share_task(task_id, "ghost@example.com")

        assert await store.list_collaborators(task_id) == []

    @pytest.mark.asyncio
    async def test_share_unknown_task(self, store):
        """Sharing a task that does not exist is reported."""
        await make_user(store, "Bob")

        with pytest.raises(TaskNotFound):
            await store.share_task(999, "bob@example.com")

    @pytest.mark.asyncio
    async def test_collaborators_in_insertion_order(self, store):
        """Collaborators come back in the order they were added."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        carol = await make_user(store, "Carol")
        task_id = await store.create_task("Plan trip", None, alice)

        await store.share_task(task_id, "carol@example.com")
        await store.share_task(task_id, "bob@example.com")

        collaborators = await store.list_collaborators(task_id)
        assert task_ids(collaborators) == [carol, bob]
        assert collaborators[0].name == "Carol"

    @pytest.mark.asyncio
    async def test_delete_cascades_to_collaborators(self, store):
        """Deleting a task removes it for everyone, links included."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        task_id = await store.create_task("Plan trip", None, alice)
        keep_id = await store.create_task("Keep me", None, alice)
        await store.share_task(task_id, "bob@example.com")
        await store.share_task(keep_id, "bob@example.com")

        await store.delete_task(task_id)

        assert await store.list_collaborators(task_id) == []
        assert task_ids(await store.list_tasks_for_user(alice)) == [keep_id]
        assert task_ids(await store.list_tasks_for_user(bob)) == [keep_id]
        assert len(await store.list_collaborators(keep_id)) == 1

    @pytest.mark.asyncio
    async def test_unshare_task(self, store):
        """Removing a collaborator hides the task from them only."""
        alice = await make_user(store, "Alice")
        bob = await make_user(store, "Bob")
        task_id = await store.create_task("Plan trip", None, alice)
        await store.share_task(task_id, "bob@example.com")

        assert await store.unshare_task(task_id, bob) is True
        assert await store.unshare_task(task_id, bob) is False

        assert await store.list_collaborators(task_id) == []
        assert await store.list_tasks_for_user(bob) == []
        assert task_ids(await store.list_tasks_for_user(alice)) == [task_id]

    @pytest.mark.asyncio
    async def test_owner_listing_has_no_duplicates(self, store):
        """A task owned and also linked to the same user is listed once."""
        alice = await make_user(store, "Alice")
        task_id = await store.create_task("Mine", None, alice)
        await store.share_task(task_id, "alice@example.com")

        assert task_ids(await store.list_tasks_for_user(alice)) == [task_id]
