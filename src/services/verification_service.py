"""Secondary photo verification of tasks whose checklist flagged elevated risk."""

import logging

from src.core import clock, db_client
from src.core.db_client import sanitize_param
from src.core.errors import ForbiddenError, InvalidInputError, InvalidStateError, NotFoundError
from src.core.locks import checklist_key, entity_guard, task_key
from src.core.logging import span
from src.domain.create_models import SecondaryVerificationSubmission
from src.domain.notification import NotificationType
from src.domain.task import TaskState
from src.domain.user import Actor, ActorRole
from src.domain.verification import SecondaryVerification
from src.interface import blob_store
from src.services import notification_service
from src.services.checklist_service import load_checklist_for_task
from src.services.task_service import actor_worker, load_task
from src.services.task_state_machine import Transition, apply_transition, require_capability, require_source_state


logger = logging.getLogger(__name__)


async def submit_secondary_verification(
    *,
    actor: Actor,
    submission: SecondaryVerificationSubmission,
) -> SecondaryVerification:
    """Store the two evidence photos and make the task ready to start.

    Only legal while the task is pending secondary verification with an
    approved checklist that requires it. An existing record is overwritten.
    """
    with span("verification_service.submit_secondary_verification"):
        require_capability(actor=actor, transition=Transition.SUBMIT_SECONDARY_VERIFICATION)
        worker = await actor_worker(actor)

        async with entity_guard(task_key(submission.task_id)):
            task = await load_task(submission.task_id)
            if task.worker_id != worker.id:
                raise ForbiddenError("Only the assigned worker can submit the secondary verification")

            checklist = await load_checklist_for_task(task.id)
            if checklist is None:
                msg = f"Task {task.id} has no checklist"
                raise InvalidStateError(msg)

            async with entity_guard(checklist_key(checklist.id)):
                if not checklist.requires_secondary_verification:
                    msg = f"The checklist of task {task.id} does not require secondary verification"
                    raise InvalidStateError(msg)
                if checklist.approved is not True:
                    msg = f"The checklist of task {task.id} has not been approved"
                    raise InvalidStateError(msg)
                require_source_state(task=task, transition=Transition.SUBMIT_SECONDARY_VERIFICATION)

                images = (submission.image1, submission.image2)
                if not all(blob_store.is_image_data_uri(image) for image in images):
                    raise InvalidInputError("Both images must be data URIs starting with 'data:image/'")

                image1_url = await blob_store.store_image(submission.image1)
                image2_url = await blob_store.store_image(submission.image2)

                fields = {"image1_url": image1_url, "image2_url": image2_url, "uploaded_at": clock.timestamp()}
                async with db_client.transaction():
                    if checklist.secondary_verification:
                        record = await db_client.update_record(
                            collection="secondary_verifications",
                            record_id=checklist.secondary_verification.id,
                            data=fields,
                        )
                    else:
                        record = await db_client.create_record(
                            collection="secondary_verifications",
                            data={"checklist_id": checklist.id, **fields},
                        )
                    task = await apply_transition(task=task, to_state=TaskState.READY_TO_START)

        verification = SecondaryVerification(**record)
        logger.info(
            "Secondary verification submitted",
            extra={"task_id": task.id, "checklist_id": checklist.id, "verification_id": verification.id},
        )
        notification_service.notify_later(
            NotificationType.SECONDARY_VERIFICATION_SUBMITTED,
            task=task,
            context={"worker_name": worker.full_name, "verification_id": verification.id},
        )
        return verification


async def get_secondary_verification_by_task(*, actor: Actor, task_id: str) -> SecondaryVerification:
    with span("verification_service.get_secondary_verification_by_task"):
        task = await load_task(task_id)
        if actor.role == ActorRole.WORKER and task.worker_id != (await actor_worker(actor)).id:
            raise ForbiddenError("Workers can only view their own verifications")

        checklist = await db_client.get_first_record(
            collection="checklists",
            filter_query=f'task_id = "{sanitize_param(task_id)}"',
        )
        record = None
        if checklist:
            record = await db_client.get_first_record(
                collection="secondary_verifications",
                filter_query=f'checklist_id = "{sanitize_param(checklist["id"])}"',
            )
        if record is None:
            msg = f"Task {task_id} has no secondary verification"
            raise NotFoundError(msg)
        return SecondaryVerification(**record)
