"""Tests for TaskList (SyncedResource over the tasks table)."""

import asyncio

import pytest

from taskmirror.core.errors import NetworkError, NotAuthenticatedError
from taskmirror.domain.task import TaskStatus
from taskmirror.services.task_service import TaskList
from taskmirror.services.views import TaskFilter
from tests.unit.mocks import NOW, OTHER_USER, USER


async def _settle(resource) -> None:
    for _ in range(3):
        await asyncio.sleep(0)
    await resource.subscriptions.wait_until_idle()


@pytest.fixture
async def seeded(seed):
    return {
        "personal": await seed("tasks", user_id=USER["id"], title="Personal", project_id=None),
        "project": await seed("tasks", user_id=USER["id"], title="In project", project_id="p1"),
        "foreign": await seed("tasks", user_id=OTHER_USER["id"], title="Not mine", project_id=None),
        "trashed": await seed(
            "tasks", user_id=USER["id"], title="Trashed", project_id=None, deleted_at="2026-10-01T00:00:00+00:00"
        ),
    }


@pytest.mark.unit
class TestTaskList:
    async def test_mount_loads_personal_live_tasks(self, patched_db, auth, seeded):
        async with TaskList(auth=auth) as tasks:
            assert [task.title for task in tasks.items] == ["Personal"]

    async def test_project_list_loads_project_tasks(self, patched_db, auth, seeded):
        async with TaskList(auth=auth, project_id="p1") as tasks:
            assert [task.title for task in tasks.items] == ["In project"]

    async def test_create_sets_owner_and_project(self, patched_db, auth):
        async with TaskList(auth=auth, project_id="p1") as tasks:
            result = await tasks.create({"title": "New", "priority": "high"})

            assert result.ok
            assert result.data.user_id == USER["id"]
            assert result.data.project_id == "p1"
            assert result.data.status == TaskStatus.NEW
            assert tasks.get(result.data.id) is not None

    async def test_create_requires_user(self, patched_db, signed_out_auth):
        tasks = TaskList(auth=signed_out_auth)

        result = await tasks.create({"title": "New"})

        assert not result.ok
        assert isinstance(result.error, NotAuthenticatedError)
        assert patched_db.rows("tasks") == []

    async def test_create_failure_leaves_store_untouched(self, patched_db, auth):
        async with TaskList(auth=auth) as tasks:
            patched_db.fail_next("create", "tasks", NetworkError("offline"))

            result = await tasks.create({"title": "New"})

            assert not result.ok
            assert isinstance(result.error, NetworkError)
            assert tasks.items == []

    async def test_toggle_complete_flips_status(self, patched_db, auth, seeded):
        async with TaskList(auth=auth) as tasks:
            task_id = seeded["personal"]["id"]

            done = await tasks.toggle_complete(task_id)
            assert done.data.status == TaskStatus.COMPLETED

            reopened = await tasks.toggle_complete(task_id)
            assert reopened.data.status == TaskStatus.NEW

    async def test_toggle_unknown_task_fails(self, patched_db, auth):
        async with TaskList(auth=auth) as tasks:
            result = await tasks.toggle_complete("missing")

            assert not result.ok

    async def test_remove_soft_deletes(self, patched_db, auth, seeded):
        async with TaskList(auth=auth) as tasks:
            task_id = seeded["personal"]["id"]

            result = await tasks.remove(task_id)

            assert result.ok
            assert tasks.get(task_id) is None
            row = await patched_db.get_record(collection="tasks", record_id=task_id)
            assert row["deleted_at"]

    async def test_remote_insert_reaches_store(self, patched_db, auth):
        async with TaskList(auth=auth) as tasks:
            await patched_db.create_record(
                collection="tasks", data={"user_id": USER["id"], "title": "From elsewhere", "project_id": None}
            )
            await _settle(tasks)

            assert [task.title for task in tasks.items] == ["From elsewhere"]

    async def test_remote_soft_delete_leaves_store(self, patched_db, auth, seeded):
        async with TaskList(auth=auth) as tasks:
            await patched_db.update_record(
                collection="tasks", record_id=seeded["personal"]["id"], data={"deleted_at": NOW}
            )
            await _settle(tasks)

            assert tasks.items == []

    async def test_sign_out_clears_and_sign_in_reloads(self, patched_db, auth, seeded):
        async with TaskList(auth=auth) as tasks:
            await auth.set_user(None)
            assert tasks.items == []

            await auth.set_user(dict(USER))
            assert [task.title for task in tasks.items] == ["Personal"]

    async def test_mount_reports_subscribe_failure_but_loads(self, patched_db, auth, seeded):
        patched_db.fail_next("subscribe", "tasks", NetworkError("realtime down"))
        tasks = TaskList(auth=auth)

        result = await tasks.mount()

        assert not result.ok
        assert isinstance(result.error, NetworkError)
        assert [task.title for task in result.data] == ["Personal"]
        await tasks.unmount()

    async def test_unmount_closes_listeners(self, patched_db, auth):
        tasks = TaskList(auth=auth)
        await tasks.mount()
        assert patched_db.listener_count("tasks") == 1

        await tasks.unmount()

        assert patched_db.listener_count("tasks") == 0

    async def test_filtered_view(self, patched_db, auth):
        async with TaskList(auth=auth) as tasks:
            await tasks.create({"title": "Due", "due_date": "2026-10-19"})
            await tasks.create({"title": "Later", "due_date": "2026-11-01"})

            today = NOW.date()
            assert [task.title for task in tasks.filtered(TaskFilter.TODAY, today)] == ["Due"]
