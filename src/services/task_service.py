"""Task creation, listing, retrieval and cancellation."""

import logging
import secrets
import time

from src.core import clock, db_client
from src.core.config import Constants
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from src.core.locks import entity_guard, task_key
from src.core.logging import span
from src.domain.checklist import Checklist
from src.domain.create_models import PairedTaskCreate, TaskCreate
from src.domain.notification import NotificationType
from src.domain.task import CancelledBy, Task, TaskState
from src.domain.user import SYSTEM_ACTOR, Actor, ActorRole, Supervisor, Worker
from src.models.service_models import ChecklistSummary, PairedTaskResult, TaskDetail
from src.services import identity_service, notification_service
from src.services.task_state_machine import Transition, apply_transition, require_capability, require_source_state


logger = logging.getLogger(__name__)


async def load_task(task_id: str) -> Task:
    """Fetch a task or raise NotFoundError."""
    try:
        record = await db_client.get_record(collection="tasks", record_id=task_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Task {task_id} not found"
        raise NotFoundError(msg) from e
    return Task(**record)


async def actor_worker(actor: Actor) -> Worker:
    """Worker profile of a WORKER actor."""
    worker = await identity_service.find_worker_by_user(actor.id)
    if worker is None:
        raise ForbiddenError("No worker profile is linked to this account")
    return worker


async def actor_supervisor(actor: Actor) -> Supervisor:
    """Supervisor profile of a SUPERVISOR actor."""
    supervisor = await identity_service.find_supervisor_by_user(actor.id)
    if supervisor is None:
        raise ForbiddenError("No supervisor profile is linked to this account")
    return supervisor


def require_supervises(*, task: Task, supervisor: Supervisor) -> None:
    """Unassigned tasks may be handled by any supervisor, others only by their own."""
    if task.supervisor_id is not None and task.supervisor_id != supervisor.id:
        msg = f"Task {task.id} is supervised by another supervisor"
        raise ForbiddenError(msg)


def _clean_text(value: str | None, *, field: str, max_length: int, required: bool = False) -> str | None:
    cleaned = value.strip() if value else ""
    if required and not cleaned:
        msg = f"{field} is required"
        raise InvalidInputError(msg)
    if len(cleaned) > max_length:
        msg = f"{field} must be at most {max_length} characters"
        raise InvalidInputError(msg)
    return cleaned or None


def _new_group_id() -> str:
    return f"GRP-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


async def create_task(*, actor: Actor, payload: TaskCreate) -> Task:
    """Create a PENDING task for today.

    Supervisors create and assign a task to any active worker. Workers may only
    create tasks for themselves, which are left without a supervisor.
    """
    with span("task_service.create_task"):
        require_capability(actor=actor, transition=Transition.CREATE)

        supervisor_id = None
        created_by_worker = actor.role == ActorRole.WORKER
        if created_by_worker:
            own = await actor_worker(actor)
            if payload.worker_id and payload.worker_id != own.id:
                raise ForbiddenError("Workers can only create tasks for themselves")
            worker_id = own.id
        else:
            supervisor_id = (await actor_supervisor(actor)).id
            if not payload.worker_id:
                raise InvalidInputError("worker_id is required")
            worker_id = payload.worker_id

        worker = await identity_service.get_worker(worker_id)

        description = _clean_text(
            payload.description, field="description", max_length=Constants.MAX_DESCRIPTION_LENGTH, required=True
        )
        location = _clean_text(payload.location, field="location", max_length=Constants.MAX_DESCRIPTION_LENGTH)
        if not worker.active:
            raise InvalidInputError("Cannot assign a task to an inactive worker")

        record = await db_client.create_record(
            collection="tasks",
            data={
                "description": description,
                "location": location,
                "assignment_date": clock.today(),
                "current_state": TaskState.PENDING,
                "worker_id": worker.id,
                "supervisor_id": supervisor_id,
                "created_by_worker": created_by_worker,
            },
        )
        task = Task(**record)
        logger.info("Created task", extra={"task_id": task.id, "worker_id": worker.id, "actor_id": actor.id})

        if not created_by_worker:
            notification_service.notify_later(NotificationType.TASK_ASSIGNED, task=task)
        return task


async def create_paired_task(*, actor: Actor, payload: PairedTaskCreate) -> PairedTaskResult:
    """Create two linked tasks sharing a group id. Both are created or neither is."""
    with span("task_service.create_paired_task"):
        require_capability(actor=actor, transition=Transition.CREATE)
        if actor.role != ActorRole.SUPERVISOR:
            raise ForbiddenError("Only supervisors can assign paired tasks")
        supervisor = await actor_supervisor(actor)

        first = await identity_service.get_worker(payload.worker_id_1)
        second = await identity_service.get_worker(payload.worker_id_2)

        if first.id == second.id:
            raise InvalidInputError("A paired task needs two different workers")
        description = _clean_text(
            payload.description, field="description", max_length=Constants.MAX_DESCRIPTION_LENGTH, required=True
        )
        location = _clean_text(payload.location, field="location", max_length=Constants.MAX_DESCRIPTION_LENGTH)
        if not (first.active and second.active):
            raise InvalidInputError("Cannot assign a task to an inactive worker")

        group_id = _new_group_id()
        assignment_date = clock.today()
        tasks = []
        async with db_client.transaction():
            for worker in (first, second):
                record = await db_client.create_record(
                    collection="tasks",
                    data={
                        "description": description,
                        "location": location,
                        "assignment_date": assignment_date,
                        "current_state": TaskState.PENDING,
                        "worker_id": worker.id,
                        "supervisor_id": supervisor.id,
                        "group_id": group_id,
                        "created_by_worker": False,
                    },
                )
                tasks.append(Task(**record))

        logger.info("Created paired tasks", extra={"group_id": group_id, "task_ids": [t.id for t in tasks]})
        for task in tasks:
            notification_service.notify_later(NotificationType.TASK_ASSIGNED, task=task, context={"group_id": group_id})
        return PairedTaskResult(group_id=group_id, tasks=tasks)


async def list_tasks(
    *,
    actor: Actor,
    assignment_date: str | None = None,
    state: TaskState | None = None,
    worker_id: str | None = None,
    supervisor_id: str | None = None,
    group_id: str | None = None,
    page: int = 1,
    per_page: int = Constants.DEFAULT_PER_PAGE_LIMIT,
) -> list[Task]:
    """List tasks newest first.

    Workers only see their own tasks and supervisors only the tasks they
    supervise, whatever filters they pass. Administrators see everything.
    """
    with span("task_service.list_tasks"):
        if actor.role == ActorRole.WORKER:
            worker_id = (await actor_worker(actor)).id
        elif actor.role == ActorRole.SUPERVISOR:
            supervisor_id = (await actor_supervisor(actor)).id
        elif actor.role != ActorRole.ADMINISTRATOR:
            raise ForbiddenError("Not allowed to list tasks")

        filters = []
        if assignment_date:
            filters.append(f'assignment_date = "{sanitize_param(assignment_date)}"')
        if state:
            filters.append(f'current_state = "{sanitize_param(state)}"')
        if worker_id:
            filters.append(f'worker_id = "{sanitize_param(worker_id)}"')
        if supervisor_id:
            filters.append(f'supervisor_id = "{sanitize_param(supervisor_id)}"')
        if group_id:
            filters.append(f'group_id = "{sanitize_param(group_id)}"')

        records = await db_client.list_records(
            collection="tasks",
            filter_query=" && ".join(filters),
            sort="id DESC",
            page=page,
            per_page=per_page,
        )
        return [Task(**record) for record in records]


async def _checklist_summary(task_id: str) -> ChecklistSummary | None:
    record = await db_client.get_first_record(
        collection="checklists",
        filter_query=f'task_id = "{sanitize_param(task_id)}"',
    )
    if record is None:
        return None
    checklist = Checklist(**record)
    verification_count = await db_client.count_records(
        collection="secondary_verifications",
        filter_query=f'checklist_id = "{sanitize_param(checklist.id)}"',
    )
    return ChecklistSummary(
        id=checklist.id,
        approved=checklist.approved,
        requires_secondary_verification=checklist.requires_secondary_verification,
        submitted_at=checklist.submitted_at,
        has_secondary_verification=verification_count > 0,
    )


async def get_task(*, actor: Actor, task_id: str) -> TaskDetail:
    """Fetch a task with its checklist summary. Workers only see their own tasks."""
    with span("task_service.get_task"):
        task = await load_task(task_id)
        if actor.role == ActorRole.WORKER and task.worker_id != (await actor_worker(actor)).id:
            raise ForbiddenError("Workers can only view their own tasks")

        return TaskDetail(task=task, checklist=await _checklist_summary(task.id))


async def cancel_task(*, actor: Actor, task_id: str, reason: str) -> Task:
    """Cancel a non-terminal task on behalf of a supervisor."""
    with span("task_service.cancel_task", task_id=task_id):
        require_capability(actor=actor, transition=Transition.CANCEL)
        supervisor = await actor_supervisor(actor)

        async with entity_guard(task_key(task_id)):
            task = await load_task(task_id)
            require_supervises(task=task, supervisor=supervisor)
            require_source_state(task=task, transition=Transition.CANCEL)
            cleaned_reason = _clean_text(
                reason, field="reason", max_length=Constants.MAX_TEXT_LENGTH, required=True
            )

            async with db_client.transaction():
                task = await apply_transition(
                    task=task,
                    to_state=TaskState.CANCELLED,
                    data={
                        "cancelled_by": CancelledBy.SUPERVISOR,
                        "cancellation_reason": cleaned_reason,
                        "cancelled_at": clock.timestamp(),
                    },
                )

        logger.info("Cancelled task", extra={"task_id": task.id, "actor_id": actor.id})
        notification_service.notify_later(
            NotificationType.TASK_CANCELLED, task=task, context={"reason": cleaned_reason}
        )
        return task


async def auto_cancel_task(*, task_id: str, today: str, actor: Actor = SYSTEM_ACTOR) -> Task:
    """Cancel a task still PENDING after its assignment day. System actor only.

    Notification is left to the caller (the stale sweep).
    """
    with span("task_service.auto_cancel_task", task_id=task_id):
        require_capability(actor=actor, transition=Transition.AUTO_CANCEL)

        async with entity_guard(task_key(task_id)):
            task = await load_task(task_id)
            require_source_state(task=task, transition=Transition.AUTO_CANCEL)
            if task.assignment_date >= today:
                msg = f"Task {task.id} is assigned for {task.assignment_date} and is not stale yet"
                raise InvalidStateError(msg)

            async with db_client.transaction():
                task = await apply_transition(
                    task=task,
                    to_state=TaskState.AUTO_CANCELLED,
                    data={
                        "cancelled_by": CancelledBy.SYSTEM,
                        "cancellation_reason": Constants.AUTO_CANCEL_REASON,
                        "cancelled_at": clock.timestamp(),
                    },
                )

        logger.info("Auto-cancelled stale task", extra={"task_id": task.id, "assignment_date": task.assignment_date})
        return task
