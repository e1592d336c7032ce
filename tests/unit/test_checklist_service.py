"""Tests for checklist submission, approval and rejection."""

import asyncio

import pytest

from src.core import db_client
from src.core.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from src.domain.create_models import AnswerInput, ChecklistSubmission, TaskCreate
from src.domain.notification import NotificationType
from src.domain.task import TaskState
from src.services import checklist_service, task_service
from tests.unit.helpers import assign_task, get_state, notifications_for, submission


@pytest.mark.unit
async def test_submit_checklist_all_clear(crew) -> None:
    task = await assign_task(crew)

    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    assert checklist.task_id == task.id
    assert checklist.approved is None
    assert checklist.requires_secondary_verification is False
    assert [a.step for a in checklist.answers] == [1, 2, 3, 4, 5]
    assert await get_state(task.id) == TaskState.CHECKLIST_SUBMITTED


@pytest.mark.unit
async def test_submit_checklist_notifies_supervisor(crew) -> None:
    task = await assign_task(crew)
    await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    notifications = await notifications_for(crew.supervisor.actor.id)

    assert [n["type"] for n in notifications] == [NotificationType.CHECKLIST_SUBMITTED]
    assert "Walter Worker" in notifications[0]["message"]


@pytest.mark.unit
async def test_self_created_task_has_no_supervisor_to_notify(crew) -> None:
    task = await task_service.create_task(actor=crew.worker.actor, payload=TaskCreate(description="Check fuses"))

    await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    assert await notifications_for(crew.supervisor.actor.id) == []
    assert await get_state(task.id) == TaskState.CHECKLIST_SUBMITTED


@pytest.mark.unit
@pytest.mark.parametrize(
    ("pairs", "expected"),
    [
        (((1, False), (2, True), (3, True), (4, True), (5, False)), False),
        (((1, True), (2, True), (3, False), (4, True), (5, True)), True),
    ],
)
async def test_submit_checklist_derives_secondary_verification(crew, pairs, expected) -> None:
    task = await assign_task(crew)

    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id, *pairs))

    assert checklist.requires_secondary_verification is expected


@pytest.mark.unit
async def test_answers_are_returned_ordered_by_step(crew) -> None:
    task = await assign_task(crew)

    checklist = await checklist_service.submit_checklist(
        actor=crew.worker.actor,
        submission=submission(task.id, (5, True), (1, True), (3, True)),
    )

    assert [a.step for a in checklist.answers] == [1, 3, 5]


@pytest.mark.unit
async def test_submit_checklist_by_other_worker_is_forbidden(crew) -> None:
    task = await assign_task(crew)

    with pytest.raises(ForbiddenError):
        await checklist_service.submit_checklist(actor=crew.other_worker.actor, submission=submission(task.id))


@pytest.mark.unit
async def test_submit_checklist_by_supervisor_is_forbidden(crew) -> None:
    task = await assign_task(crew)

    with pytest.raises(ForbiddenError):
        await checklist_service.submit_checklist(actor=crew.supervisor.actor, submission=submission(task.id))


@pytest.mark.unit
async def test_submit_checklist_unknown_task(crew) -> None:
    with pytest.raises(NotFoundError):
        await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission("9999"))


@pytest.mark.unit
async def test_submit_checklist_on_cancelled_task(crew) -> None:
    task = await assign_task(crew)
    await task_service.cancel_task(actor=crew.supervisor.actor, task_id=task.id, reason="Storm warning")

    with pytest.raises(InvalidStateError, match="cancelled"):
        await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    assert await db_client.count_records(collection="checklists") == 0


@pytest.mark.unit
@pytest.mark.parametrize("step", [0, 6])
async def test_submit_checklist_rejects_out_of_range_step(crew, step) -> None:
    task = await assign_task(crew)

    with pytest.raises(InvalidInputError, match="out of range"):
        await checklist_service.submit_checklist(
            actor=crew.worker.actor, submission=submission(task.id, (step, True))
        )
    assert await get_state(task.id) == TaskState.PENDING


@pytest.mark.unit
async def test_submit_checklist_requires_answers(crew) -> None:
    task = await assign_task(crew)

    with pytest.raises(InvalidInputError):
        await checklist_service.submit_checklist(
            actor=crew.worker.actor, submission=ChecklistSubmission(task_id=task.id, answers=[])
        )


@pytest.mark.unit
async def test_submit_checklist_rejects_inactive_procedure(crew) -> None:
    task = await assign_task(crew)
    procedure = await db_client.create_record(
        collection="procedures", data={"name": "Lockout/tagout", "active": False}
    )

    with pytest.raises(InvalidInputError):
        await checklist_service.submit_checklist(
            actor=crew.worker.actor,
            submission=ChecklistSubmission(
                task_id=task.id,
                answers=[AnswerInput(step=1, answer=True)],
                procedure_id=procedure["id"],
            ),
        )


@pytest.mark.unit
async def test_approve_without_secondary_verification(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    approved = await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)

    assert approved.approved is True
    assert approved.reviewed_at is not None
    assert await get_state(task.id) == TaskState.READY_TO_START
    types = [n["type"] for n in await notifications_for(crew.worker.actor.id)]
    assert types == [NotificationType.TASK_ASSIGNED, NotificationType.CHECKLIST_APPROVED]


@pytest.mark.unit
async def test_approve_with_secondary_verification(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(
        actor=crew.worker.actor, submission=submission(task.id, (1, True), (2, False))
    )

    await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)

    assert await get_state(task.id) == TaskState.PENDING_SECONDARY_VERIFICATION
    approved_notice = (await notifications_for(crew.worker.actor.id))[-1]
    assert "secondary verification" in approved_notice["message"]


@pytest.mark.unit
async def test_approve_twice_is_invalid_state(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)

    with pytest.raises(InvalidStateError, match="already approved"):
        await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)
    assert await get_state(task.id) == TaskState.READY_TO_START


@pytest.mark.unit
async def test_approve_by_worker_is_forbidden(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    with pytest.raises(ForbiddenError):
        await checklist_service.approve_checklist(actor=crew.worker.actor, checklist_id=checklist.id)


@pytest.mark.unit
async def test_approve_by_other_supervisor_is_forbidden(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    with pytest.raises(ForbiddenError):
        await checklist_service.approve_checklist(actor=crew.other_supervisor.actor, checklist_id=checklist.id)


@pytest.mark.unit
async def test_approve_claims_unsupervised_task(crew) -> None:
    task = await task_service.create_task(actor=crew.worker.actor, payload=TaskCreate(description="Check fuses"))
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    await checklist_service.approve_checklist(actor=crew.other_supervisor.actor, checklist_id=checklist.id)

    record = await db_client.get_record(collection="tasks", record_id=task.id)
    assert record["supervisor_id"] == crew.other_supervisor.profile.id


@pytest.mark.unit
async def test_approve_unknown_checklist(crew) -> None:
    with pytest.raises(NotFoundError):
        await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id="9999")


@pytest.mark.unit
async def test_approve_cancelled_task(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    await task_service.cancel_task(actor=crew.supervisor.actor, task_id=task.id, reason="Storm warning")

    with pytest.raises(InvalidStateError):
        await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)


@pytest.mark.unit
async def test_reject_then_resubmit(crew) -> None:
    task = await assign_task(crew)
    first = await checklist_service.submit_checklist(
        actor=crew.worker.actor, submission=submission(task.id, (1, True), (2, False), (3, True))
    )

    rejected = await checklist_service.reject_checklist(
        actor=crew.supervisor.actor, checklist_id=first.id, comments="Describe the isolation points"
    )

    assert rejected.approved is False
    assert rejected.reviewer_comments == "Describe the isolation points"
    assert await get_state(task.id) == TaskState.UNDER_REVIEW
    rejection = (await notifications_for(crew.worker.actor.id))[-1]
    assert rejection["type"] == NotificationType.CHECKLIST_REJECTED
    assert "Describe the isolation points" in rejection["message"]

    second = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    assert second.id == first.id
    assert second.approved is None
    assert second.reviewer_comments is None
    assert second.requires_secondary_verification is False
    assert [(a.step, a.answer) for a in second.answers] == [(1, True), (2, True), (3, True), (4, True), (5, True)]
    assert await db_client.count_records(collection="checklist_answers") == 5
    assert await get_state(task.id) == TaskState.CHECKLIST_SUBMITTED


@pytest.mark.unit
async def test_reject_requires_comments(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    with pytest.raises(InvalidInputError, match="Comments"):
        await checklist_service.reject_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id, comments=" ")
    assert await get_state(task.id) == TaskState.CHECKLIST_SUBMITTED


@pytest.mark.unit
async def test_reject_approved_checklist_is_invalid_state(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)

    with pytest.raises(InvalidStateError):
        await checklist_service.reject_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id, comments="No")


@pytest.mark.unit
async def test_resubmitting_approved_checklist_is_invalid_state(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)

    with pytest.raises(InvalidStateError, match="already approved"):
        await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))


@pytest.mark.unit
async def test_submitting_twice_without_review_is_invalid_state(crew) -> None:
    task = await assign_task(crew)
    await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    with pytest.raises(InvalidStateError):
        await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))


@pytest.mark.unit
async def test_approve_rejected_checklist_is_invalid_state(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))
    await checklist_service.reject_checklist(
        actor=crew.supervisor.actor, checklist_id=checklist.id, comments="Missing lockout step"
    )

    with pytest.raises(InvalidStateError, match="rejected"):
        await checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)
    assert await get_state(task.id) == TaskState.UNDER_REVIEW


@pytest.mark.unit
async def test_concurrent_approve_and_reject_decide_once(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    approved, rejected = await asyncio.gather(
        checklist_service.approve_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id),
        checklist_service.reject_checklist(
            actor=crew.supervisor.actor, checklist_id=checklist.id, comments="Wrong permit"
        ),
        return_exceptions=True,
    )

    outcomes = [r for r in (approved, rejected) if not isinstance(r, Exception)]
    errors = [r for r in (approved, rejected) if isinstance(r, Exception)]
    assert len(outcomes) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], InvalidStateError)

    stored = await checklist_service.load_checklist(checklist.id)
    assert stored.approved is outcomes[0].approved
    expected = TaskState.READY_TO_START if stored.approved else TaskState.UNDER_REVIEW
    assert await get_state(task.id) == expected


@pytest.mark.unit
async def test_every_submitted_answer_is_returned(crew) -> None:
    task = await assign_task(crew)
    pairs = [((i % 5) + 1, True) for i in range(120)]
    pairs[117] = (3, False)

    checklist = await checklist_service.submit_checklist(
        actor=crew.worker.actor, submission=submission(task.id, *pairs)
    )

    assert len(checklist.answers) == 120
    assert checklist.requires_secondary_verification is True
    assert any(a.step == 3 and a.answer is False for a in checklist.answers)
    by_id = await checklist_service.get_checklist(actor=crew.supervisor.actor, checklist_id=checklist.id)
    by_task = await checklist_service.get_checklist_by_task(actor=crew.worker.actor, task_id=task.id)
    assert len(by_id.answers) == len(by_task.answers) == 120


@pytest.mark.unit
async def test_get_checklist_by_task(crew) -> None:
    task = await assign_task(crew)
    submitted = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    fetched = await checklist_service.get_checklist_by_task(actor=crew.supervisor.actor, task_id=task.id)

    assert fetched.id == submitted.id
    assert len(fetched.answers) == 5


@pytest.mark.unit
async def test_get_checklist_by_task_without_checklist(crew) -> None:
    task = await assign_task(crew)

    with pytest.raises(NotFoundError):
        await checklist_service.get_checklist_by_task(actor=crew.supervisor.actor, task_id=task.id)


@pytest.mark.unit
async def test_get_checklist_hidden_from_other_workers(crew) -> None:
    task = await assign_task(crew)
    checklist = await checklist_service.submit_checklist(actor=crew.worker.actor, submission=submission(task.id))

    with pytest.raises(ForbiddenError):
        await checklist_service.get_checklist(actor=crew.other_worker.actor, checklist_id=checklist.id)
