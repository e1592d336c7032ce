"""Worker roster: listing profiles and tracking daily availability."""

import logging

from src.core import db_client
from src.core.errors import ForbiddenError, InvalidInputError
from src.core.locks import entity_guard, worker_key
from src.core.logging import span
from src.domain.notification import NotificationType
from src.domain.user import Actor, ActorRole, Worker
from src.services import identity_service, notification_service
from src.services.task_service import actor_supervisor, actor_worker


logger = logging.getLogger(__name__)

_ROSTER_ROLES = {ActorRole.SUPERVISOR, ActorRole.ADMINISTRATOR}


async def list_workers(*, actor: Actor, shift: str | None = None, available: bool | None = None) -> list[Worker]:
    """Roster for supervisors and administrators, ordered by shift and then name."""
    with span("worker_service.list_workers"):
        if actor.role not in _ROSTER_ROLES:
            raise ForbiddenError("Only supervisors and administrators can list workers")
        return await identity_service.list_workers(shift=shift, available=available)


async def get_worker(*, actor: Actor, worker_id: str) -> Worker:
    """A single worker profile. Workers may only view their own."""
    with span("worker_service.get_worker", worker_id=worker_id):
        worker = await identity_service.get_worker(worker_id)
        if actor.role == ActorRole.WORKER:
            if (await actor_worker(actor)).id != worker.id:
                raise ForbiddenError("Workers can only view their own profile")
        elif actor.role not in _ROSTER_ROLES:
            raise ForbiddenError("Not allowed to view worker profiles")
        return worker


async def set_worker_availability(*, actor: Actor, worker_id: str, available: bool) -> Worker:
    """Mark a worker as available or unavailable for today.

    The worker is told when a supervisor takes them off the day's roster.
    Marking an already unavailable worker again sends nothing.
    """
    with span("worker_service.set_worker_availability", worker_id=worker_id):
        if actor.role != ActorRole.SUPERVISOR:
            raise ForbiddenError("Only supervisors can change worker availability")
        supervisor = await actor_supervisor(actor)

        async with entity_guard(worker_key(worker_id)):
            worker = await identity_service.get_worker(worker_id)
            if not worker.active:
                raise InvalidInputError("Cannot change availability of an inactive worker")

            was_available = worker.available_today
            if was_available != available:
                await db_client.update_record(
                    collection="workers",
                    record_id=worker.id,
                    data={"available_today": available},
                )
                worker = worker.model_copy(update={"available_today": available})

        logger.info(
            "Set worker availability",
            extra={"worker_id": worker.id, "available": available, "actor_id": actor.id},
        )
        if was_available and not available:
            notification_service.notify_worker_later(
                NotificationType.WORKER_AVAILABILITY_CHANGED,
                worker=worker,
                context={
                    "supervisor_name": supervisor.full_name,
                    "availability": "unavailable",
                    "available": False,
                },
            )
        return worker
