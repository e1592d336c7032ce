"""Task lifecycle transition table and per-transition actor capabilities.

Services call these guards in a fixed order (capability, then state) before
touching storage, so every operation reports failures with the same priority.
"""

import logging
from enum import StrEnum
from typing import Any

from src.core import db_client
from src.core.db_client import sanitize_param
from src.core.errors import ConflictError, ForbiddenError, InvalidStateError
from src.core.logging import span
from src.domain.task import CANCELLED_STATES, Task, TaskState
from src.domain.user import Actor, ActorRole


logger = logging.getLogger(__name__)


class Transition(StrEnum):
    CREATE = "create"
    SUBMIT_CHECKLIST = "submit_checklist"
    APPROVE_CHECKLIST = "approve_checklist"
    REJECT_CHECKLIST = "reject_checklist"
    SUBMIT_SECONDARY_VERIFICATION = "submit_secondary_verification"
    CANCEL = "cancel"
    AUTO_CANCEL = "auto_cancel"


# Every edge of the task lifecycle graph
TASK_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.PENDING: {TaskState.CHECKLIST_SUBMITTED, TaskState.CANCELLED, TaskState.AUTO_CANCELLED},
    TaskState.CHECKLIST_SUBMITTED: {
        TaskState.PENDING_SECONDARY_VERIFICATION,
        TaskState.READY_TO_START,
        TaskState.UNDER_REVIEW,
        TaskState.CANCELLED,
    },
    TaskState.UNDER_REVIEW: {TaskState.CHECKLIST_SUBMITTED, TaskState.CANCELLED},
    TaskState.PENDING_SECONDARY_VERIFICATION: {TaskState.READY_TO_START, TaskState.CANCELLED},
    TaskState.READY_TO_START: {TaskState.IN_PROGRESS, TaskState.CANCELLED},
    TaskState.IN_PROGRESS: {TaskState.CANCELLED},
    TaskState.CANCELLED: set(),
    TaskState.AUTO_CANCELLED: set(),
}

NON_TERMINAL_STATES: frozenset[TaskState] = frozenset(state for state in TaskState if state not in CANCELLED_STATES)

# States a task must be in for each transition to apply
SOURCE_STATES: dict[Transition, frozenset[TaskState]] = {
    Transition.SUBMIT_CHECKLIST: frozenset({TaskState.PENDING, TaskState.UNDER_REVIEW}),
    Transition.APPROVE_CHECKLIST: frozenset({TaskState.CHECKLIST_SUBMITTED}),
    Transition.REJECT_CHECKLIST: frozenset({TaskState.CHECKLIST_SUBMITTED}),
    Transition.SUBMIT_SECONDARY_VERIFICATION: frozenset({TaskState.PENDING_SECONDARY_VERIFICATION}),
    Transition.CANCEL: NON_TERMINAL_STATES,
    Transition.AUTO_CANCEL: frozenset({TaskState.PENDING}),
}

# Roles allowed to trigger each transition
CAPABILITIES: dict[Transition, frozenset[ActorRole]] = {
    Transition.CREATE: frozenset({ActorRole.SUPERVISOR, ActorRole.WORKER}),
    Transition.SUBMIT_CHECKLIST: frozenset({ActorRole.WORKER}),
    Transition.APPROVE_CHECKLIST: frozenset({ActorRole.SUPERVISOR}),
    Transition.REJECT_CHECKLIST: frozenset({ActorRole.SUPERVISOR}),
    Transition.SUBMIT_SECONDARY_VERIFICATION: frozenset({ActorRole.WORKER}),
    Transition.CANCEL: frozenset({ActorRole.SUPERVISOR}),
    Transition.AUTO_CANCEL: frozenset({ActorRole.SYSTEM}),
}


def can_transition(*, from_state: TaskState, to_state: TaskState) -> bool:
    return to_state in TASK_TRANSITIONS[from_state]


def require_capability(*, actor: Actor | None, transition: Transition) -> None:
    """Raise ForbiddenError unless the actor's role may trigger the transition."""
    if actor is None or actor.role not in CAPABILITIES[transition]:
        role = actor.role if actor else "anonymous"
        msg = f"Role {role} is not allowed to {transition.value.replace('_', ' ')}"
        raise ForbiddenError(msg)


def require_source_state(*, task: Task, transition: Transition) -> None:
    """Raise InvalidStateError unless the task is in a state the transition applies to."""
    if task.is_cancelled:
        msg = f"Task {task.id} is cancelled ({task.current_state}) and accepts no further changes"
        raise InvalidStateError(msg)
    if task.current_state not in SOURCE_STATES[transition]:
        msg = f"Cannot {transition.value.replace('_', ' ')}: task {task.id} is in {task.current_state} state"
        raise InvalidStateError(msg)


def require_edge(*, task_id: str, from_state: TaskState, to_state: TaskState) -> None:
    if not can_transition(from_state=from_state, to_state=to_state):
        msg = f"Illegal transition for task {task_id}: {from_state} -> {to_state}"
        raise InvalidStateError(msg)


def state_after_approval(*, requires_secondary_verification: bool) -> TaskState:
    if requires_secondary_verification:
        return TaskState.PENDING_SECONDARY_VERIFICATION
    return TaskState.READY_TO_START


async def apply_transition(*, task: Task, to_state: TaskState, data: dict[str, Any] | None = None) -> Task:
    """Persist a state change for a task loaded by the caller.

    The update only matches while the stored state still equals ``task.current_state``,
    so a transition that lost a race raises ConflictError instead of overwriting.
    Runs inside the caller's transaction when there is one.
    """
    with span("task_state_machine.apply_transition", task_id=task.id, to_state=str(to_state)):
        require_edge(task_id=task.id, from_state=task.current_state, to_state=to_state)

        updated = await db_client.update_records(
            collection="tasks",
            filter_query=f'id = "{sanitize_param(task.id)}" && current_state = "{sanitize_param(task.current_state)}"',
            data={**(data or {}), "current_state": to_state},
        )
        if updated == 0:
            msg = f"Task {task.id} changed state concurrently; expected {task.current_state}"
            raise ConflictError(msg)

        record = await db_client.get_record(collection="tasks", record_id=task.id)
        logger.info(
            "Transitioned task",
            extra={"task_id": task.id, "from_state": task.current_state, "to_state": to_state},
        )
        return Task(**record)
