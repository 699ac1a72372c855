"""PostgreSQL record source reading the workflow tables with psycopg2."""

from typing import Any
from uuid import UUID

import psycopg2
import structlog

from maintask_finder.backend import RecordSource
from maintask_finder.models import AssignmentRecord, TaskRecord

logger = structlog.get_logger()

ASSIGNMENT_TABLE = "sungero_wf_assignment"
TASK_TABLE = "sungero_wf_task"

_ASSIGNMENT_COLUMNS = "Id, Discriminator, task"
_TASK_COLUMNS = "Id, Discriminator, MainTask, ParentTask, ParentAsg"


class PostgresSource(RecordSource):
    """Record source issuing parameterized SELECTs over an open connection."""

    def __init__(self, connection: Any) -> None:
        """Initialize the source.

        Args:
            connection: An open psycopg2 connection (normally ``LiveSession.connection``)
        """
        self.connection = connection

    def _fetch_one(self, sql: str, params: dict[str, Any]) -> tuple | None:
        logger.debug("Running query", sql=" ".join(sql.split()), params=params)
        try:
            with self.connection.cursor() as cursor:
                cursor.execute(sql, params)
                return cursor.fetchone()
        except psycopg2.Error as e:
            logger.error("Query failed", error=str(e), pgcode=e.pgcode)
            raise

    @staticmethod
    def _where(discriminator: UUID | None) -> tuple[str, dict[str, Any]]:
        if discriminator is None:
            return "WHERE Id = %(id)s", {}
        return "WHERE Id = %(id)s AND Discriminator = %(discriminator)s::uuid", {"discriminator": str(discriminator)}

    @staticmethod
    def _uuid(value: Any) -> UUID | None:
        if value is None or isinstance(value, UUID):
            return value
        return UUID(str(value))

    def fetch_assignment(self, assignment_id: int, discriminator: UUID | None = None) -> AssignmentRecord | None:
        """Fetch an assignment row."""
        where, params = self._where(discriminator)
        params["id"] = assignment_id
        row = self._fetch_one(f"SELECT {_ASSIGNMENT_COLUMNS} FROM {ASSIGNMENT_TABLE} {where}", params)
        if row is None:
            logger.debug("Assignment not found", assignment_id=assignment_id, discriminator=str(discriminator))
            return None

        row_id, row_discriminator, task_id = row
        return AssignmentRecord(
            id=row_id,
            linked_task_id=task_id,
            discriminator=self._uuid(row_discriminator),
        )

    def fetch_task(self, task_id: int, discriminator: UUID | None = None) -> TaskRecord | None:
        """Fetch a task row."""
        where, params = self._where(discriminator)
        params["id"] = task_id
        row = self._fetch_one(f"SELECT {_TASK_COLUMNS} FROM {TASK_TABLE} {where}", params)
        if row is None:
            logger.debug("Task not found", task_id=task_id, discriminator=str(discriminator))
            return None

        row_id, row_discriminator, main_task, parent_task, parent_asg = row
        return TaskRecord(
            id=row_id,
            root_task_id=main_task or 0,
            parent_task_id=parent_task,
            parent_assignment_id=parent_asg,
            discriminator=self._uuid(row_discriminator),
        )
