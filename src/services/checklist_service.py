"""Five-point checklist submission and supervisor review."""

import logging
from typing import Any

from src.core import clock, db_client
from src.core.config import Constants
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from src.core.locks import checklist_key, entity_guard, task_key
from src.core.logging import span
from src.domain.checklist import Checklist, ChecklistAnswer
from src.domain.create_models import AnswerInput, ChecklistSubmission
from src.domain.notification import NotificationType
from src.domain.task import TaskState
from src.domain.user import Actor, ActorRole
from src.domain.verification import SecondaryVerification
from src.services import notification_service, procedure_service
from src.services.checklist_evaluator import requires_secondary_verification
from src.services.task_service import (
    actor_supervisor,
    actor_worker,
    load_task,
    require_supervises,
)
from src.services.task_state_machine import (
    Transition,
    apply_transition,
    require_capability,
    require_source_state,
    state_after_approval,
)


logger = logging.getLogger(__name__)


async def _find_checklist_record(task_id: str) -> dict[str, Any] | None:
    return await db_client.get_first_record(
        collection="checklists",
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )


async def _hydrate(record: dict[str, Any]) -> Checklist:
    """Attach answers (ordered by step) and the secondary verification to a checklist row."""
    answer_records = await db_client.list_all_records(
        collection="checklist_answers",
        filter_query=f'checklist_id = "{sanitize_param(record["id"])}"',
        sort="position ASC",
    )
    answers = sorted((ChecklistAnswer(**answer) for answer in answer_records), key=lambda a: a.step)

    verification = await db_client.get_first_record(
        collection="secondary_verifications",
        filter_query=f'checklist_id = "{sanitize_param(record["id"])}"',
    )
    return Checklist(
        **record,
        answers=answers,
        secondary_verification=SecondaryVerification(**verification) if verification else None,
    )


async def load_checklist(checklist_id: str) -> Checklist:
    try:
        record = await db_client.get_record(collection="checklists", record_id=checklist_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Checklist {checklist_id} not found"
        raise NotFoundError(msg) from e
    return await _hydrate(record)


async def load_checklist_for_task(task_id: str) -> Checklist | None:
    record = await _find_checklist_record(task_id)
    return await _hydrate(record) if record else None


def _validate_answers(answers: list[AnswerInput]) -> None:
    if not answers:
        raise InvalidInputError("At least one answer is required")
    for item in answers:
        if not Constants.CHECKLIST_FIRST_STEP <= item.step <= Constants.CHECKLIST_LAST_STEP:
            msg = (
                f"Step {item.step} is out of range "
                f"({Constants.CHECKLIST_FIRST_STEP}-{Constants.CHECKLIST_LAST_STEP})"
            )
            raise InvalidInputError(msg)
        if len(item.question) > Constants.MAX_TEXT_LENGTH:
            msg = f"Question text for step {item.step} is too long"
            raise InvalidInputError(msg)


def _optional_text(value: str | None, field: str) -> str | None:
    cleaned = value.strip() if value else ""
    if len(cleaned) > Constants.MAX_TEXT_LENGTH:
        msg = f"{field} must be at most {Constants.MAX_TEXT_LENGTH} characters"
        raise InvalidInputError(msg)
    return cleaned or None


async def submit_checklist(*, actor: Actor, submission: ChecklistSubmission) -> Checklist:
    """Submit or resubmit the checklist of a task.

    A resubmission replaces every previous answer, recomputes the secondary
    verification requirement and returns the review decision to pending.
    """
    with span("checklist_service.submit_checklist", task_id=submission.task_id):
        require_capability(actor=actor, transition=Transition.SUBMIT_CHECKLIST)
        worker = await actor_worker(actor)

        async with entity_guard(task_key(submission.task_id)):
            task = await load_task(submission.task_id)
            if task.worker_id != worker.id:
                raise ForbiddenError("Only the assigned worker can submit this checklist")

            existing = await _find_checklist_record(task.id)
            keys = (checklist_key(existing["id"]),) if existing else ()
            async with entity_guard(*keys):
                if existing and existing["approved"]:
                    msg = f"The checklist of task {task.id} is already approved"
                    raise InvalidStateError(msg)
                require_source_state(task=task, transition=Transition.SUBMIT_CHECKLIST)

                _validate_answers(submission.answers)
                additional_hazards = _optional_text(submission.additional_hazards, "additional_hazards")
                comments = _optional_text(submission.comments, "comments")
                if submission.procedure_id:
                    await procedure_service.require_active_procedure(submission.procedure_id)

                fields = {
                    "worker_id": worker.id,
                    "submitted_at": clock.timestamp(),
                    "procedure_id": submission.procedure_id,
                    "additional_hazards": additional_hazards,
                    "comments": comments,
                    "requires_secondary_verification": requires_secondary_verification(submission.answers),
                    "approved": None,
                    "reviewed_at": None,
                    "reviewer_comments": None,
                }

                async with db_client.transaction():
                    if existing:
                        record = await db_client.update_record(
                            collection="checklists", record_id=existing["id"], data=fields
                        )
                        await db_client.delete_records(
                            collection="checklist_answers",
                            filter_query=f'checklist_id = "{sanitize_param(existing["id"])}"',
                        )
                    else:
                        record = await db_client.create_record(
                            collection="checklists", data={"task_id": task.id, **fields}
                        )

                    for position, item in enumerate(submission.answers):
                        await db_client.create_record(
                            collection="checklist_answers",
                            data={
                                "checklist_id": record["id"],
                                "position": position,
                                "step": item.step,
                                "question": item.question,
                                "answer": item.answer,
                            },
                        )

                    task = await apply_transition(task=task, to_state=TaskState.CHECKLIST_SUBMITTED)

        checklist = await load_checklist(record["id"])
        logger.info(
            "Checklist submitted",
            extra={
                "checklist_id": checklist.id,
                "task_id": task.id,
                "resubmission": existing is not None,
                "requires_secondary_verification": checklist.requires_secondary_verification,
            },
        )
        notification_service.notify_later(
            NotificationType.CHECKLIST_SUBMITTED,
            task=task,
            context={"worker_name": worker.full_name, "checklist_id": checklist.id},
        )
        return checklist


async def _checklist_task_id(checklist_id: str) -> str:
    try:
        record = await db_client.get_record(collection="checklists", record_id=checklist_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Checklist {checklist_id} not found"
        raise NotFoundError(msg) from e
    return record["task_id"]


def _require_pending_review(checklist: Checklist) -> None:
    if checklist.is_pending_review:
        return
    if checklist.approved:
        msg = f"Checklist {checklist.id} is already approved"
    else:
        msg = f"Checklist {checklist.id} was rejected and awaits resubmission"
    raise InvalidStateError(msg)


async def approve_checklist(*, actor: Actor, checklist_id: str) -> Checklist:
    """Approve a pending checklist and move the task to its next state.

    Approving twice is rejected; the approval itself is permanent.
    """
    with span("checklist_service.approve_checklist", checklist_id=checklist_id):
        require_capability(actor=actor, transition=Transition.APPROVE_CHECKLIST)
        supervisor = await actor_supervisor(actor)
        task_id = await _checklist_task_id(checklist_id)

        async with entity_guard(task_key(task_id), checklist_key(checklist_id)):
            checklist = await load_checklist(checklist_id)
            task = await load_task(task_id)
            require_supervises(task=task, supervisor=supervisor)

            _require_pending_review(checklist)
            require_source_state(task=task, transition=Transition.APPROVE_CHECKLIST)

            next_state = state_after_approval(
                requires_secondary_verification=checklist.requires_secondary_verification
            )
            task_data = {} if task.supervisor_id else {"supervisor_id": supervisor.id}

            async with db_client.transaction():
                await db_client.update_record(
                    collection="checklists",
                    record_id=checklist_id,
                    data={"approved": True, "reviewed_at": clock.timestamp()},
                )
                task = await apply_transition(task=task, to_state=next_state, data=task_data)

        checklist = await load_checklist(checklist_id)
        logger.info(
            "Checklist approved",
            extra={"checklist_id": checklist_id, "task_id": task.id, "task_state": task.current_state},
        )
        next_step = (
            "Upload the secondary verification photos to continue."
            if next_state == TaskState.PENDING_SECONDARY_VERIFICATION
            else "The task is ready to start."
        )
        notification_service.notify_later(
            NotificationType.CHECKLIST_APPROVED,
            task=task,
            context={"checklist_id": checklist_id, "next_step": next_step},
        )
        return checklist


async def reject_checklist(*, actor: Actor, checklist_id: str, comments: str) -> Checklist:
    """Reject a pending checklist, sending the task back for revision."""
    with span("checklist_service.reject_checklist", checklist_id=checklist_id):
        require_capability(actor=actor, transition=Transition.REJECT_CHECKLIST)
        supervisor = await actor_supervisor(actor)
        task_id = await _checklist_task_id(checklist_id)

        async with entity_guard(task_key(task_id), checklist_key(checklist_id)):
            checklist = await load_checklist(checklist_id)
            task = await load_task(task_id)
            require_supervises(task=task, supervisor=supervisor)

            _require_pending_review(checklist)
            require_source_state(task=task, transition=Transition.REJECT_CHECKLIST)

            reviewer_comments = _optional_text(comments, "comments")
            if not reviewer_comments:
                raise InvalidInputError("Comments are required to reject a checklist")
            task_data = {} if task.supervisor_id else {"supervisor_id": supervisor.id}

            async with db_client.transaction():
                await db_client.update_record(
                    collection="checklists",
                    record_id=checklist_id,
                    data={"approved": False, "reviewed_at": clock.timestamp(), "reviewer_comments": reviewer_comments},
                )
                task = await apply_transition(task=task, to_state=TaskState.UNDER_REVIEW, data=task_data)

        checklist = await load_checklist(checklist_id)
        logger.info("Checklist rejected", extra={"checklist_id": checklist_id, "task_id": task.id})
        notification_service.notify_later(
            NotificationType.CHECKLIST_REJECTED,
            task=task,
            context={"checklist_id": checklist_id, "comments": reviewer_comments},
        )
        return checklist


async def _require_can_view(actor: Actor, task_id: str) -> None:
    if actor.role != ActorRole.WORKER:
        return
    task = await load_task(task_id)
    if task.worker_id != (await actor_worker(actor)).id:
        raise ForbiddenError("Workers can only view their own checklists")


async def get_checklist(*, actor: Actor, checklist_id: str) -> Checklist:
    with span("checklist_service.get_checklist"):
        checklist = await load_checklist(checklist_id)
        await _require_can_view(actor, checklist.task_id)
        return checklist


async def get_checklist_by_task(*, actor: Actor, task_id: str) -> Checklist:
    """Fetch the checklist submitted for a task."""
    with span("checklist_service.get_checklist_by_task"):
        await load_task(task_id)
        await _require_can_view(actor, task_id)
        checklist = await load_checklist_for_task(task_id)
        if checklist is None:
            msg = f"Task {task_id} has no checklist"
            raise NotFoundError(msg)
        return checklist
