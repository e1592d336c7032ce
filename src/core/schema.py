"""SQLite schema management (code-first approach)."""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "users",
    "workers",
    "supervisors",
    "procedures",
    "tasks",
    "checklists",
    "checklist_answers",
    "secondary_verifications",
    "notifications",
]


_TABLES: dict[str, str] = {
    "users": """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            national_id TEXT NOT NULL UNIQUE,
            role TEXT NOT NULL CHECK (role IN ('WORKER', 'SUPERVISOR', 'ADMINISTRATOR')),
            active INTEGER NOT NULL DEFAULT 1,
            session_token TEXT,
            last_login TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "workers": """
        CREATE TABLE IF NOT EXISTS workers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE REFERENCES users (id),
            full_name TEXT NOT NULL,
            position TEXT,
            shift TEXT,
            available_today INTEGER NOT NULL DEFAULT 1,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "supervisors": """
        CREATE TABLE IF NOT EXISTS supervisors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE REFERENCES users (id),
            full_name TEXT NOT NULL,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "procedures": """
        CREATE TABLE IF NOT EXISTS procedures (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT,
            document_url TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "tasks": """
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            description TEXT NOT NULL,
            location TEXT,
            assignment_date TEXT NOT NULL,
            current_state TEXT NOT NULL,
            worker_id INTEGER NOT NULL REFERENCES workers (id),
            supervisor_id INTEGER REFERENCES supervisors (id),
            group_id TEXT,
            created_by_worker INTEGER NOT NULL DEFAULT 0,
            cancelled_by TEXT,
            cancellation_reason TEXT,
            cancelled_at TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "checklists": """
        CREATE TABLE IF NOT EXISTS checklists (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            task_id INTEGER NOT NULL UNIQUE REFERENCES tasks (id),
            worker_id INTEGER NOT NULL REFERENCES workers (id),
            submitted_at TEXT NOT NULL,
            procedure_id INTEGER REFERENCES procedures (id),
            additional_hazards TEXT,
            comments TEXT,
            requires_secondary_verification INTEGER NOT NULL DEFAULT 0,
            approved INTEGER,
            reviewed_at TEXT,
            reviewer_comments TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "checklist_answers": """
        CREATE TABLE IF NOT EXISTS checklist_answers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            checklist_id INTEGER NOT NULL REFERENCES checklists (id),
            position INTEGER NOT NULL,
            step INTEGER NOT NULL,
            question TEXT NOT NULL,
            answer INTEGER NOT NULL,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "secondary_verifications": """
        CREATE TABLE IF NOT EXISTS secondary_verifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            checklist_id INTEGER NOT NULL UNIQUE REFERENCES checklists (id),
            image1_url TEXT NOT NULL,
            image2_url TEXT NOT NULL,
            uploaded_at TEXT NOT NULL,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
    "notifications": """
        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            recipient_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            payload TEXT NOT NULL DEFAULT '{}',
            task_id INTEGER,
            is_read INTEGER NOT NULL DEFAULT 0,
            read_at TEXT,
            created TEXT NOT NULL,
            updated TEXT NOT NULL
        )
    """,
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_workers_shift ON workers (shift, available_today)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_state_date ON tasks (current_state, assignment_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_worker ON tasks (worker_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_supervisor ON tasks (supervisor_id)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_group ON tasks (group_id)",
    "CREATE INDEX IF NOT EXISTS idx_answers_checklist ON checklist_answers (checklist_id)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_recipient ON notifications (recipient_id, is_read)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create every table and index that does not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_TABLES[collection])
    for statement in _INDEXES:
        await conn.execute(statement)
    await conn.commit()

    logger.info("Database schema initialized", extra={"collections": len(COLLECTIONS)})
