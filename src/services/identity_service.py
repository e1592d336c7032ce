"""Session tokens and actor resolution for the workflow engine.

The engine only ever sees a resolved ``Actor``. Single active session per
user is enforced here: issuing a token records its session id on the user and
any token carrying an older session id is rejected.
"""

import logging
import secrets
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from src.core import clock, db_client
from src.core.config import settings
from src.core.db_client import sanitize_param
from src.core.errors import AccountDisabledError, NotFoundError, SessionInvalidatedError, UnauthorizedError
from src.core.logging import span
from src.domain.user import Actor, ActorRole, Supervisor, Worker


logger = logging.getLogger(__name__)

_SESSION_SALT = "toma5-session"


def _serializer() -> URLSafeTimedSerializer:
    secret = settings.require_credential("session_secret_key", "Session signing")
    return URLSafeTimedSerializer(secret, salt=_SESSION_SALT)


async def issue_session_token(*, user_id: str) -> str:
    """Sign a new session token for the user, invalidating any previous one."""
    with span("identity_service.issue_session_token"):
        session_id = secrets.token_urlsafe(16)
        token = _serializer().dumps({"user_id": user_id, "session": session_id})

        await db_client.update_record(
            collection="users",
            record_id=user_id,
            data={"session_token": session_id, "last_login": clock.timestamp()},
        )

        logger.info("Issued session token", extra={"user_id": user_id})
        return token


async def revoke_session(*, user_id: str) -> None:
    await db_client.update_record(collection="users", record_id=user_id, data={"session_token": None})
    logger.info("Revoked session", extra={"user_id": user_id})


async def resolve_actor(token: str | None) -> Actor:
    """Verify a session token and return the actor it belongs to.

    Raises:
        UnauthorizedError: Missing, malformed or expired token, or unknown user
        AccountDisabledError: The user account is inactive
        SessionInvalidatedError: A newer session replaced this one
    """
    with span("identity_service.resolve_actor"):
        if not token:
            raise UnauthorizedError("Authentication token required")

        try:
            data = _serializer().loads(token, max_age=settings.session_max_age_seconds)
        except SignatureExpired as e:
            raise UnauthorizedError("Session token expired") from e
        except BadSignature as e:
            raise UnauthorizedError("Invalid session token") from e

        user_id = str(data.get("user_id", ""))
        try:
            user = await db_client.get_record(collection="users", record_id=user_id)
        except db_client.RecordNotFoundError as e:
            raise UnauthorizedError("Unknown user") from e

        if not user["active"]:
            raise AccountDisabledError("Account is disabled")

        if user["session_token"] != data.get("session"):
            logger.info("Rejected superseded session", extra={"user_id": user_id})
            raise SessionInvalidatedError("Session was replaced by a newer login")

        return Actor(id=user["id"], role=ActorRole(user["role"]))


async def _to_worker(record: dict[str, Any]) -> Worker:
    """Worker profile with the account status of its linked user."""
    try:
        user = await db_client.get_record(collection="users", record_id=record["user_id"])
    except db_client.RecordNotFoundError:
        return Worker(**record, active=False)
    return Worker(**record, active=bool(user["active"]), national_id=user["national_id"])


async def find_worker_by_user(user_id: str) -> Worker | None:
    record = await db_client.get_first_record(
        collection="workers",
        filter_query=f'user_id = "{sanitize_param(user_id)}"',
    )
    return await _to_worker(record) if record else None


async def find_supervisor_by_user(user_id: str) -> Supervisor | None:
    record = await db_client.get_first_record(
        collection="supervisors",
        filter_query=f'user_id = "{sanitize_param(user_id)}"',
    )
    return Supervisor(**record) if record else None


async def get_worker(worker_id: str) -> Worker:
    try:
        record = await db_client.get_record(collection="workers", record_id=worker_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Worker {worker_id} not found"
        raise NotFoundError(msg) from e
    return await _to_worker(record)


async def get_supervisor(supervisor_id: str) -> Supervisor:
    try:
        record = await db_client.get_record(collection="supervisors", record_id=supervisor_id)
    except db_client.RecordNotFoundError as e:
        msg = f"Supervisor {supervisor_id} not found"
        raise NotFoundError(msg) from e
    return Supervisor(**record)


async def list_active_user_ids(*, role: ActorRole) -> list[str]:
    """IDs of every active user with the given role."""
    records = await db_client.list_all_records(
        collection="users",
        filter_query=f'role = "{role}" && active = "true"',
    )
    return [record["id"] for record in records]


async def list_workers(*, shift: str | None = None, available: bool | None = None) -> list[Worker]:
    """Every worker profile matching the filters, ordered by shift and then name."""
    filters = []
    if shift:
        filters.append(f'shift = "{sanitize_param(shift)}"')
    if available is not None:
        filters.append(f'available_today = "{str(available).lower()}"')

    records = await db_client.list_all_records(
        collection="workers",
        filter_query=" && ".join(filters),
        sort="full_name ASC",
    )
    workers = [await _to_worker(record) for record in records]
    return sorted(workers, key=lambda worker: (worker.shift or "", worker.full_name))
