"""Dictionary-backed record source shared by the resolver and backend tests."""

from uuid import UUID

from maintask_finder.backend import RecordSource
from maintask_finder.models import AssignmentRecord, TaskRecord


class InMemorySource(RecordSource):
    """Record source backed by dictionaries that remembers every lookup."""

    def __init__(
        self,
        assignments: list[AssignmentRecord] | None = None,
        tasks: list[TaskRecord] | None = None,
    ) -> None:
        self.assignments = {a.id: a for a in assignments or []}
        self.tasks = {t.id: t for t in tasks or []}
        self.calls: list[tuple[str, int, UUID | None]] = []

    def fetch_assignment(self, assignment_id: int, discriminator: UUID | None = None) -> AssignmentRecord | None:
        self.calls.append(("assignment", assignment_id, discriminator))
        record = self.assignments.get(assignment_id)
        if record is None or (discriminator is not None and record.discriminator != discriminator):
            return None
        return record

    def fetch_task(self, task_id: int, discriminator: UUID | None = None) -> TaskRecord | None:
        self.calls.append(("task", task_id, discriminator))
        record = self.tasks.get(task_id)
        if record is None or (discriminator is not None and record.discriminator != discriminator):
            return None
        return record
