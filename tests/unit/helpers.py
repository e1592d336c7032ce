"""Seeding helpers shared by the unit tests."""

from dataclasses import dataclass
from datetime import date, timedelta

from src.core import clock, db_client
from src.domain.create_models import AnswerInput, ChecklistSubmission, TaskCreate
from src.domain.task import Task, TaskState
from src.domain.user import Actor, ActorRole, Supervisor, Worker
from src.services import notification_service, task_service


@dataclass
class Person:
    """A seeded user with its role profile."""

    actor: Actor
    profile: Worker | Supervisor | None = None


@dataclass
class Crew:
    supervisor: Person
    other_supervisor: Person
    worker: Person
    other_worker: Person
    inactive_worker: Person
    admin: Person


async def create_user(national_id: str, role: ActorRole, *, active: bool = True) -> Actor:
    record = await db_client.create_record(
        collection="users",
        data={"national_id": national_id, "role": role, "active": active},
    )
    return Actor(id=record["id"], role=role)


async def create_worker(national_id: str, full_name: str, *, active: bool = True) -> Person:
    actor = await create_user(national_id, ActorRole.WORKER, active=active)
    record = await db_client.create_record(
        collection="workers",
        data={"user_id": actor.id, "full_name": full_name, "position": "Electrician", "shift": "day"},
    )
    return Person(actor=actor, profile=Worker(**record, active=active))


async def create_supervisor(national_id: str, full_name: str) -> Person:
    actor = await create_user(national_id, ActorRole.SUPERVISOR)
    record = await db_client.create_record(
        collection="supervisors",
        data={"user_id": actor.id, "full_name": full_name},
    )
    return Person(actor=actor, profile=Supervisor(**record))


async def seed_crew() -> Crew:
    return Crew(
        supervisor=await create_supervisor("1001", "Sofia Supervisor"),
        other_supervisor=await create_supervisor("1002", "Samuel Supervisor"),
        worker=await create_worker("2001", "Walter Worker"),
        other_worker=await create_worker("2002", "Wendy Worker"),
        inactive_worker=await create_worker("2003", "Ivan Inactive", active=False),
        admin=Person(actor=await create_user("3001", ActorRole.ADMINISTRATOR)),
    )


async def assign_task(crew: Crew, *, worker: Person | None = None, description: str = "Replace breaker panel") -> Task:
    """Supervisor assigns a task for today."""
    worker = worker or crew.worker
    return await task_service.create_task(
        actor=crew.supervisor.actor,
        payload=TaskCreate(description=description, location="Substation 3", worker_id=worker.profile.id),
    )


async def backdate_task(task_id: str, *, days: int = 1) -> None:
    """Move a task's assignment date into the past."""
    past = date.fromisoformat(clock.today()) - timedelta(days=days)
    await db_client.update_record(collection="tasks", record_id=task_id, data={"assignment_date": past.isoformat()})


async def get_state(task_id: str) -> TaskState:
    record = await db_client.get_record(collection="tasks", record_id=task_id)
    return TaskState(record["current_state"])


def answers(*pairs: tuple[int, bool]) -> list[AnswerInput]:
    return [AnswerInput(step=step, question=f"Question {step}?", answer=value) for step, value in pairs]


ALL_CLEAR = ((1, True), (2, True), (3, True), (4, True), (5, True))


def submission(task_id: str, *pairs: tuple[int, bool]) -> ChecklistSubmission:
    return ChecklistSubmission(task_id=task_id, answers=answers(*(pairs or ALL_CLEAR)))


async def notifications_for(user_id: str) -> list[dict]:
    """Stored notifications of a user, oldest first, after pending deliveries finish."""
    await notification_service.flush()
    return await db_client.list_records(
        collection="notifications",
        filter_query=f'recipient_id = "{user_id}"',
        sort="id ASC",
    )
