"""HTTP and WebSocket surface of the workflow engine.

Handlers only resolve the caller and delegate to the services. Every
``WorkflowError`` is turned into an ``ErrorResponse`` by ``workflow_error_handler``.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.core.errors import UnauthorizedError, WorkflowError, http_status_for, to_error_response
from src.domain.checklist import Checklist
from src.domain.create_models import (
    ChecklistRejection,
    ChecklistSubmission,
    PairedTaskCreate,
    SecondaryVerificationSubmission,
    TaskCancellation,
    TaskCreate,
    WorkerAvailabilityUpdate,
)
from src.domain.notification import Notification
from src.domain.procedure import Procedure
from src.domain.task import Task, TaskState
from src.domain.user import Actor, Worker
from src.domain.verification import SecondaryVerification
from src.interface.live_channel import connection_registry
from src.models.service_models import NotificationPage, PairedTaskResult, SweepSummary, TaskDetail
from src.services import (
    checklist_service,
    identity_service,
    notification_service,
    procedure_service,
    sweep_service,
    task_service,
    verification_service,
    worker_service,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["workflow"])
ws_router = APIRouter(tags=["live"])

# Close code sent when a WebSocket presents no valid session
WS_POLICY_VIOLATION = 1008


async def workflow_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Map engine failures to their HTTP status and structured body."""
    error = to_error_response(exc)
    status_code = http_status_for(exc.kind) if isinstance(exc, WorkflowError) else 500
    logger.info("Request failed", extra={"code": error.code, "status": status_code})
    return JSONResponse(status_code=status_code, content=error.model_dump())


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Authorization header must use the Bearer scheme")
    return token.strip()


async def current_actor(authorization: Annotated[str | None, Header()] = None) -> Actor:
    return await identity_service.resolve_actor(_bearer_token(authorization))


ActorDep = Annotated[Actor, Depends(current_actor)]


class CountResponse(BaseModel):
    count: int


# Tasks


@router.post("/tasks", status_code=201)
async def create_task(payload: TaskCreate, actor: ActorDep) -> Task:
    return await task_service.create_task(actor=actor, payload=payload)


@router.post("/tasks/paired", status_code=201)
async def create_paired_task(payload: PairedTaskCreate, actor: ActorDep) -> PairedTaskResult:
    return await task_service.create_paired_task(actor=actor, payload=payload)


@router.get("/tasks")
async def list_tasks(
    actor: ActorDep,
    assignment_date: str | None = None,
    state: TaskState | None = None,
    worker_id: str | None = None,
    supervisor_id: str | None = None,
    group_id: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
) -> list[Task]:
    return await task_service.list_tasks(
        actor=actor,
        assignment_date=assignment_date,
        state=state,
        worker_id=worker_id,
        supervisor_id=supervisor_id,
        group_id=group_id,
        page=page,
    )


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, actor: ActorDep) -> TaskDetail:
    return await task_service.get_task(actor=actor, task_id=task_id)


@router.put("/tasks/{task_id}/cancel")
async def cancel_task(task_id: str, payload: TaskCancellation, actor: ActorDep) -> Task:
    return await task_service.cancel_task(actor=actor, task_id=task_id, reason=payload.reason)


# Workers


@router.get("/workers")
async def list_workers(actor: ActorDep, shift: str | None = None, available: bool | None = None) -> list[Worker]:
    return await worker_service.list_workers(actor=actor, shift=shift, available=available)


@router.get("/workers/{worker_id}")
async def get_worker(worker_id: str, actor: ActorDep) -> Worker:
    return await worker_service.get_worker(actor=actor, worker_id=worker_id)


@router.put("/workers/{worker_id}/availability")
async def set_worker_availability(worker_id: str, payload: WorkerAvailabilityUpdate, actor: ActorDep) -> Worker:
    return await worker_service.set_worker_availability(actor=actor, worker_id=worker_id, available=payload.available)


# Checklists


@router.post("/checklists", status_code=201)
async def submit_checklist(submission: ChecklistSubmission, actor: ActorDep) -> Checklist:
    return await checklist_service.submit_checklist(actor=actor, submission=submission)


@router.get("/checklists/task/{task_id}")
async def get_checklist_by_task(task_id: str, actor: ActorDep) -> Checklist:
    return await checklist_service.get_checklist_by_task(actor=actor, task_id=task_id)


@router.get("/checklists/{checklist_id}")
async def get_checklist(checklist_id: str, actor: ActorDep) -> Checklist:
    return await checklist_service.get_checklist(actor=actor, checklist_id=checklist_id)


@router.put("/checklists/{checklist_id}/approve")
async def approve_checklist(checklist_id: str, actor: ActorDep) -> Checklist:
    return await checklist_service.approve_checklist(actor=actor, checklist_id=checklist_id)


@router.put("/checklists/{checklist_id}/reject")
async def reject_checklist(checklist_id: str, payload: ChecklistRejection, actor: ActorDep) -> Checklist:
    return await checklist_service.reject_checklist(actor=actor, checklist_id=checklist_id, comments=payload.comments)


# Secondary verifications


@router.post("/secondary-verifications", status_code=201)
async def submit_secondary_verification(
    submission: SecondaryVerificationSubmission, actor: ActorDep
) -> SecondaryVerification:
    return await verification_service.submit_secondary_verification(actor=actor, submission=submission)


@router.get("/secondary-verifications/task/{task_id}")
async def get_secondary_verification(task_id: str, actor: ActorDep) -> SecondaryVerification:
    return await verification_service.get_secondary_verification_by_task(actor=actor, task_id=task_id)


# Notifications


@router.get("/notifications")
async def list_notifications(
    actor: ActorDep,
    limit: int | None = None,
    page: int = 1,
    only_unread: bool = False,
) -> NotificationPage:
    return await notification_service.list_notifications(
        recipient_id=actor.id, limit=limit, page=page, only_unread=only_unread
    )


@router.put("/notifications/read-all")
async def mark_all_notifications_read(actor: ActorDep) -> CountResponse:
    return CountResponse(count=await notification_service.mark_all_read(recipient_id=actor.id))


@router.put("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str, actor: ActorDep) -> Notification:
    return await notification_service.mark_read(notification_id=notification_id, caller_id=actor.id)


# Procedures


@router.get("/procedures")
async def list_procedures(_actor: ActorDep, active: bool | None = True) -> list[Procedure]:
    return await procedure_service.list_procedures(active=active)


@router.get("/procedures/{procedure_id}")
async def get_procedure(procedure_id: str, _actor: ActorDep) -> Procedure:
    return await procedure_service.get_procedure(procedure_id)


# Sweeps


@router.post("/sweeps/stale")
async def run_stale_sweep(actor: ActorDep) -> SweepSummary:
    return await sweep_service.trigger_stale_sweep(actor=actor)


@ws_router.websocket("/ws")
async def live_updates(websocket: WebSocket, token: str | None = None) -> None:
    """Register the socket for live pushes until the client disconnects."""
    try:
        actor = await identity_service.resolve_actor(token)
    except WorkflowError as e:
        logger.info("Rejected live connection", extra={"kind": e.kind})
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await websocket.accept()
    connection_registry.register(actor.id, websocket)
    try:
        while True:
            # Clients only listen; incoming frames are ignored
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        connection_registry.unregister(actor.id, websocket)
