"""Tests for the stale-task sweep."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.core import clock, db_client
from src.core.errors import ForbiddenError, InvalidStateError
from src.domain.notification import NotificationType
from src.domain.task import CancelledBy, TaskState
from src.interface.live_channel import connection_registry
from src.services import checklist_service, sweep_service, task_service
from tests.unit.helpers import assign_task, backdate_task, get_state, notifications_for, submission


@pytest.mark.unit
async def test_sweep_cancels_yesterdays_pending_task(crew) -> None:
    task = await assign_task(crew)
    await backdate_task(task.id)

    summary = await sweep_service.run_stale_sweep()

    assert summary.today == clock.today()
    assert summary.eligible == 1
    assert summary.cancelled_task_ids == [task.id]
    assert summary.failed == 0

    record = await db_client.get_record(collection="tasks", record_id=task.id)
    assert record["current_state"] == TaskState.AUTO_CANCELLED
    assert record["cancelled_by"] == CancelledBy.SYSTEM
    assert record["cancellation_reason"]
    assert record["cancelled_at"]

    types = [n["type"] for n in await notifications_for(crew.worker.actor.id)]
    assert types.count(NotificationType.TASK_AUTO_CANCELLED) == 1


@pytest.mark.unit
async def test_sweep_is_idempotent(crew) -> None:
    task = await assign_task(crew)
    await backdate_task(task.id)
    await sweep_service.run_stale_sweep()

    second = await sweep_service.run_stale_sweep()

    assert second.eligible == 0
    assert second.succeeded == 0
    types = [n["type"] for n in await notifications_for(crew.worker.actor.id)]
    assert types.count(NotificationType.TASK_AUTO_CANCELLED) == 1


@pytest.mark.unit
async def test_sweep_leaves_todays_and_progressed_tasks(crew) -> None:
    today_task = await assign_task(crew)
    submitted = await assign_task(crew, worker=crew.other_worker)
    await checklist_service.submit_checklist(actor=crew.other_worker.actor, submission=submission(submitted.id))
    await backdate_task(submitted.id)

    summary = await sweep_service.run_stale_sweep()

    assert summary.eligible == 0
    assert await get_state(today_task.id) == TaskState.PENDING
    assert await get_state(submitted.id) == TaskState.CHECKLIST_SUBMITTED


@pytest.mark.unit
async def test_sweep_uses_local_calendar_day(crew) -> None:
    task = await assign_task(crew)
    tomorrow = clock.now() + timedelta(days=1)

    summary = await sweep_service.run_stale_sweep(now=tomorrow)

    assert summary.today == clock.local_day(tomorrow).isoformat()
    assert summary.cancelled_task_ids == [task.id]


@pytest.mark.unit
async def test_sweep_isolates_failures(crew, monkeypatch) -> None:
    broken = await assign_task(crew)
    healthy = await assign_task(crew, worker=crew.other_worker)
    await backdate_task(broken.id)
    await backdate_task(healthy.id)

    original = task_service.auto_cancel_task

    async def flaky_auto_cancel(*, task_id, today, **kwargs):
        if task_id == broken.id:
            raise RuntimeError("database is locked")
        return await original(task_id=task_id, today=today, **kwargs)

    monkeypatch.setattr(task_service, "auto_cancel_task", flaky_auto_cancel)

    summary = await sweep_service.run_stale_sweep()

    assert summary.eligible == 2
    assert summary.cancelled_task_ids == [healthy.id]
    assert summary.failed_task_ids == [broken.id]
    assert await get_state(broken.id) == TaskState.PENDING
    assert await get_state(healthy.id) == TaskState.AUTO_CANCELLED


@pytest.mark.unit
async def test_sweep_skips_task_submitted_after_selection(crew, monkeypatch) -> None:
    task = await assign_task(crew)
    await backdate_task(task.id)

    original = task_service.auto_cancel_task

    async def submit_first(*, task_id, today, **kwargs):
        # The worker submits between the sweep's selection and its cancellation
        await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task_id))
        return await original(task_id=task_id, today=today, **kwargs)

    monkeypatch.setattr(task_service, "auto_cancel_task", submit_first)

    summary = await sweep_service.run_stale_sweep()

    assert summary.eligible == 1
    assert summary.cancelled_task_ids == []
    assert summary.failed_task_ids == [task.id]
    assert await get_state(task.id) == TaskState.CHECKLIST_SUBMITTED
    record = await db_client.get_record(collection="tasks", record_id=task.id)
    assert record["cancelled_by"] is None
    assert NotificationType.TASK_AUTO_CANCELLED not in {
        n["type"] for n in await notifications_for(crew.worker.actor.id)
    }


@pytest.mark.unit
async def test_sweep_racing_a_submission_has_one_outcome(crew) -> None:
    task = await assign_task(crew)
    await backdate_task(task.id)

    submitted, summary = await asyncio.gather(
        checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id)),
        sweep_service.run_stale_sweep(),
        return_exceptions=True,
    )

    state = await get_state(task.id)
    checklists = await db_client.count_records(collection="checklists")
    if isinstance(submitted, Exception):
        assert isinstance(submitted, InvalidStateError)
        assert state == TaskState.AUTO_CANCELLED
        assert checklists == 0
    else:
        assert state == TaskState.CHECKLIST_SUBMITTED
        assert checklists == 1
        assert task.id not in summary.cancelled_task_ids


@pytest.mark.unit
async def test_sweep_announces_to_every_active_supervisor(crew) -> None:
    task = await assign_task(crew)
    await backdate_task(task.id)
    socket = AsyncMock()
    connection_registry.register(crew.admin.actor.id, socket)

    await sweep_service.run_stale_sweep()

    for supervisor in (crew.supervisor, crew.other_supervisor):
        types = [n["type"] for n in await notifications_for(supervisor.actor.id)]
        assert types == [NotificationType.STALE_SWEEP_COMPLETED]
    sent = socket.send_json.await_args.args[0]
    assert sent["event"] == "stale-sweep-completed"
    assert sent["data"]["cancelled"] == 1


@pytest.mark.unit
async def test_empty_sweep_announces_nothing(crew) -> None:
    await sweep_service.run_stale_sweep(now=datetime.now(UTC))

    assert await notifications_for(crew.supervisor.actor.id) == []


@pytest.mark.unit
async def test_trigger_stale_sweep_requires_supervisor_or_admin(crew) -> None:
    with pytest.raises(ForbiddenError):
        await sweep_service.trigger_stale_sweep(actor=crew.worker.actor)

    summary = await sweep_service.trigger_stale_sweep(actor=crew.admin.actor)
    assert summary.eligible == 0
