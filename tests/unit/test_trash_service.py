"""Tests for the move-to-trash, restore and purge workflows."""

from datetime import timedelta

import pytest

from taskmirror.core.errors import NetworkError, NotAuthenticatedError, PartialWorkflowFailure
from taskmirror.domain.trash import TrashItemStatus, TrashItemType
from taskmirror.services.trash_service import (
    STEP_CONFIRM_TRASH_ITEM,
    STEP_DELETE_ORIGINAL,
    STEP_DELETE_TRASH_ITEM,
    STEP_INSERT_TRASH_ITEM,
    STEP_SOFT_DELETE_ORIGINAL,
    TrashCoordinator,
)
from tests.unit.mocks import NOW, USER


@pytest.fixture
async def task(seed):
    return await seed("tasks", user_id=USER["id"], title="Write report", deleted_at=None)


async def _row(db, collection, record_id):
    return await db.get_record(collection=collection, record_id=record_id)


@pytest.mark.unit
class TestMoveToTrash:
    async def test_move_soft_deletes_and_confirms(self, patched_db, auth, task):
        async with TrashCoordinator(auth=auth) as trash:
            result = await trash.move_to_trash(TrashItemType.TASK, task["id"], {"title": task["title"]})

            assert result.ok
            item = result.data
            assert item.status is TrashItemStatus.CONFIRMED
            assert item.title == "Write report"
            assert item.expires_at - item.deleted_at == timedelta(days=30)
            assert [i.id for i in trash.items] == [item.id]

            original = await _row(patched_db, "tasks", task["id"])
            assert original["deleted_at"]

    async def test_move_requires_user(self, patched_db, signed_out_auth, task):
        trash = TrashCoordinator(auth=signed_out_auth)

        result = await trash.move_to_trash("task", task["id"], {})

        assert isinstance(result.error, NotAuthenticatedError)
        assert patched_db.rows("trash_items") == []

    async def test_insert_failure_changes_nothing(self, patched_db, auth, task):
        patched_db.fail_next("create", "trash_items", NetworkError("offline"))
        trash = TrashCoordinator(auth=auth)

        result = await trash.move_to_trash("task", task["id"], {})

        assert isinstance(result.error, NetworkError)
        original = await _row(patched_db, "tasks", task["id"])
        assert not original["deleted_at"]

    async def test_soft_delete_failure_leaves_pending_item(self, patched_db, auth, task):
        patched_db.fail_next("update", "tasks", NetworkError("offline"))
        async with TrashCoordinator(auth=auth) as trash:
            result = await trash.move_to_trash("task", task["id"], {"title": "Write report"})

            assert not result.ok
            error = result.error
            assert isinstance(error, PartialWorkflowFailure)
            assert error.completed_steps == [STEP_INSERT_TRASH_ITEM]
            assert error.failed_step == STEP_SOFT_DELETE_ORIGINAL
            assert isinstance(error.cause, NetworkError)
            assert result.data.status is TrashItemStatus.PENDING

            original = await _row(patched_db, "tasks", task["id"])
            assert not original["deleted_at"]

    async def test_confirm_failure_reports_both_landed_steps(self, patched_db, auth, task):
        patched_db.fail_next("update", "trash_items")
        trash = TrashCoordinator(auth=auth)

        result = await trash.move_to_trash("task", task["id"], {})

        assert result.error.completed_steps == [STEP_INSERT_TRASH_ITEM, STEP_SOFT_DELETE_ORIGINAL]
        assert result.error.failed_step == STEP_CONFIRM_TRASH_ITEM
        original = await _row(patched_db, "tasks", task["id"])
        assert original["deleted_at"]


@pytest.mark.unit
class TestResumePending:
    async def test_resume_finishes_interrupted_move(self, patched_db, auth, task):
        patched_db.fail_next("update", "tasks")
        trash = TrashCoordinator(auth=auth)
        pending = (await trash.move_to_trash("task", task["id"], {})).data

        result = await trash.resume_pending()

        assert result.ok
        assert [item.id for item in result.data] == [pending.id]
        assert result.data[0].status is TrashItemStatus.CONFIRMED
        original = await _row(patched_db, "tasks", task["id"])
        trash_row = await _row(patched_db, "trash_items", pending.id)
        assert original["deleted_at"] == trash_row["deleted_at"]

    async def test_resume_drops_item_whose_original_is_gone(self, patched_db, auth, seed):
        orphan = await seed(
            "trash_items",
            user_id=USER["id"],
            item_type="task",
            item_id="vanished",
            item_data={},
            deleted_at=NOW,
            expires_at=NOW + timedelta(days=30),
            status="pending",
        )
        trash = TrashCoordinator(auth=auth)

        result = await trash.resume_pending()

        assert result.ok
        assert result.data == []
        assert orphan["id"] not in {row["id"] for row in patched_db.rows("trash_items")}

    async def test_resume_without_user_is_a_no_op(self, patched_db, signed_out_auth):
        result = await TrashCoordinator(auth=signed_out_auth).resume_pending()

        assert result.ok
        assert result.data == []


@pytest.mark.unit
class TestRestoreAndPurge:
    async def test_restore_clears_deleted_at_and_drops_item(self, patched_db, auth, task):
        before = await _row(patched_db, "tasks", task["id"])
        async with TrashCoordinator(auth=auth) as trash:
            item = (await trash.move_to_trash("task", task["id"], {})).data

            result = await trash.restore_from_trash(item.id, "task", task["id"])

            assert result.ok
            assert trash.items == []
            original = await _row(patched_db, "tasks", task["id"])
            assert not original["deleted_at"]
            unchanged = {key: value for key, value in before.items() if key not in ("deleted_at", "updated_at")}
            assert {key: original[key] for key in unchanged} == unchanged
            assert patched_db.rows("trash_items") == []

    async def test_permanent_delete_removes_both_rows(self, patched_db, auth, task):
        trash = TrashCoordinator(auth=auth)
        item = (await trash.move_to_trash("task", task["id"], {})).data

        result = await trash.permanent_delete(item.id, "task", task["id"])

        assert result.ok
        assert patched_db.rows("tasks") == []
        assert patched_db.rows("trash_items") == []

    async def test_permanent_delete_tolerates_missing_original(self, patched_db, auth, task):
        trash = TrashCoordinator(auth=auth)
        item = (await trash.move_to_trash("task", task["id"], {})).data
        await patched_db.delete_record(collection="tasks", record_id=task["id"])

        result = await trash.permanent_delete(item.id, "task", task["id"])

        assert result.ok
        assert patched_db.rows("trash_items") == []

    async def test_permanent_delete_reports_stuck_trash_item(self, patched_db, auth, task):
        trash = TrashCoordinator(auth=auth)
        item = (await trash.move_to_trash("task", task["id"], {})).data
        patched_db.fail_next("delete", "trash_items")

        result = await trash.permanent_delete(item.id, "task", task["id"])

        assert result.error.completed_steps == [STEP_DELETE_ORIGINAL]
        assert result.error.failed_step == STEP_DELETE_TRASH_ITEM
        assert patched_db.rows("tasks") == []

    async def test_empty_trash_keeps_failed_items(self, patched_db, auth, seed):
        first = await seed("tasks", user_id=USER["id"], title="One", deleted_at=None)
        second = await seed("goals", user_id=USER["id"], title="Two", deleted_at=None)
        async with TrashCoordinator(auth=auth) as trash:
            await trash.move_to_trash("task", first["id"], {})
            stuck = (await trash.move_to_trash("goal", second["id"], {})).data
            patched_db.fail_next("delete", "goals", NetworkError("offline"))

            result = await trash.empty_trash()

            assert not result.ok
            assert result.data == 1
            assert isinstance(result.error, PartialWorkflowFailure)
            assert list(result.error.failures) == [stuck.id]
            assert [row["id"] for row in patched_db.rows("trash_items")] == [stuck.id]
            assert [item.id for item in trash.items] == [stuck.id]

    async def test_empty_trash_purges_everything(self, patched_db, auth, task):
        async with TrashCoordinator(auth=auth) as trash:
            await trash.move_to_trash("task", task["id"], {})

            result = await trash.empty_trash()

            assert result.ok
            assert result.data == 1
            assert trash.items == []

    async def test_expired_items(self, patched_db, auth, task):
        async with TrashCoordinator(auth=auth, retention_days=1) as trash:
            await trash.move_to_trash("task", task["id"], {})

            assert trash.expired_items() == []
            later = trash.items[0].deleted_at + timedelta(days=2)
            assert len(trash.expired_items(later)) == 1
