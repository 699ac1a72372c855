"""Record source interface for root-task resolution."""

from abc import ABC, abstractmethod
from uuid import UUID

from maintask_finder.models import AssignmentRecord, TaskRecord


class RecordSource(ABC):
    """Abstract base class for read-only sources of assignment and task rows."""

    @abstractmethod
    def fetch_assignment(self, assignment_id: int, discriminator: UUID | None = None) -> AssignmentRecord | None:
        """Fetch an assignment by ID.

        Args:
            assignment_id: Assignment ID
            discriminator: If given, only a row with this type discriminator matches

        Returns:
            The assignment, or None if no row matches
        """
        pass

    @abstractmethod
    def fetch_task(self, task_id: int, discriminator: UUID | None = None) -> TaskRecord | None:
        """Fetch a task by ID.

        Args:
            task_id: Task ID
            discriminator: If given, only a row with this type discriminator matches

        Returns:
            The task, or None if no row matches
        """
        pass

