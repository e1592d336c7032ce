"""Read access to the work procedure catalogue."""

import logging

from src.core import db_client
from src.core.config import Constants
from src.core.errors import InvalidInputError, NotFoundError
from src.core.logging import span
from src.domain.procedure import Procedure


logger = logging.getLogger(__name__)


async def list_procedures(*, active: bool | None = None) -> list[Procedure]:
    """List procedures by name, optionally only active (or only inactive) ones."""
    with span("procedure_service.list_procedures"):
        filter_query = "" if active is None else f'active = "{str(active).lower()}"'
        records = await db_client.list_records(
            collection="procedures",
            filter_query=filter_query,
            sort="name ASC",
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
        return [Procedure(**record) for record in records]


async def get_procedure(procedure_id: str) -> Procedure:
    with span("procedure_service.get_procedure"):
        try:
            record = await db_client.get_record(collection="procedures", record_id=procedure_id)
        except db_client.RecordNotFoundError as e:
            msg = f"Procedure {procedure_id} not found"
            raise NotFoundError(msg) from e
        return Procedure(**record)


async def require_active_procedure(procedure_id: str) -> Procedure:
    """Validate a procedure reference from a checklist payload."""
    try:
        procedure = await get_procedure(procedure_id)
    except NotFoundError as e:
        msg = f"Unknown procedure {procedure_id}"
        raise InvalidInputError(msg) from e
    if not procedure.active:
        msg = f"Procedure {procedure_id} is no longer active"
        raise InvalidInputError(msg)
    return procedure
