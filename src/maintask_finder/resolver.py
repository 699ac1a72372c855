"""Root-task resolution over assignment and task records."""

from collections.abc import Callable

import structlog

from maintask_finder.backend import RecordSource
from maintask_finder.exceptions import (
    BrokenLinkError,
    CycleSuspectedError,
    MissingRecordError,
    NoParentError,
    ResolutionError,
)
from maintask_finder.models import EntityKind, EntityRef, ResolutionStep, StartRef

logger = structlog.get_logger()

DEFAULT_MAX_ITERATIONS = 100

StepCallback = Callable[[ResolutionStep], None]


class RootTaskResolver:
    """Walks parent pointers upward until a self-rooted task is reached.

    The walk moves between two kinds of records. A task is the root when its
    ``MainTask`` column equals its own ID. From a task the walk prefers the
    parent task over the parent assignment; from an assignment it follows the
    linked task. The type discriminator is only checked for the starting
    record.
    """

    def __init__(
        self,
        source: RecordSource,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        on_step: StepCallback | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            source: Where assignment and task rows are read from
            max_iterations: Number of loop steps after which the walk is abandoned
            on_step: Optional callback receiving every progress event
        """
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.source = source
        self.max_iterations = max_iterations
        self.on_step = on_step
        self._steps: dict[EntityKind, Callable[[int], EntityRef | int]] = {
            EntityKind.TASK: self._step_task,
            EntityKind.ASSIGNMENT: self._step_assignment,
        }

    def _emit(self, iteration: int, ref: EntityRef, event: str, target: EntityRef | None = None, detail: str = "") -> None:
        if self.on_step is not None:
            self.on_step(ResolutionStep(iteration=iteration, ref=ref, event=event, target=target, detail=detail))

    def resolve(self, start: StartRef) -> int:
        """Resolve the root task for a starting reference.

        Args:
            start: Starting record ID and its type discriminator

        Returns:
            ID of the root task

        Raises:
            NoParentError: The starting record has nothing to walk from
            BrokenLinkError: A record in the chain has no outgoing pointer
            MissingRecordError: A referenced task does not exist
            CycleSuspectedError: The iteration bound was reached
        """
        logger.info("Resolving root task", start_id=start.id, discriminator=str(start.discriminator))
        path: list[EntityRef] = []
        iteration = 0

        try:
            current = self._dispatch(start, path)
            for iteration in range(1, self.max_iterations + 1):
                path.append(current)
                self._emit(iteration, current, "start")
                outcome = self._steps[current.kind](current.id)
                if isinstance(outcome, int):
                    self._emit(iteration, current, "found", detail=f"MainTask = {outcome}")
                    logger.info("Root task found", root_task_id=outcome, steps=iteration)
                    return outcome
                self._emit(iteration, current, "move", target=outcome)
                current = outcome
        except ResolutionError as e:
            e.path = list(path)
            self._emit(iteration, e.ref, "failed", detail=str(e))
            logger.warning("Root task resolution failed", error=type(e).__name__, kind=e.ref.kind.value, id=e.ref.id)
            raise

        error = CycleSuspectedError(
            f"Iteration limit ({self.max_iterations}) reached, possible circular reference",
            current,
            path,
        )
        self._emit(self.max_iterations, current, "failed", detail=str(error))
        logger.warning("Root task resolution hit iteration limit", max_iterations=self.max_iterations, last_id=current.id)
        raise error

    def _dispatch(self, start: StartRef, path: list[EntityRef]) -> EntityRef:
        """Pick the first position from the starting record."""
        origin = EntityRef(EntityKind.ASSIGNMENT, start.id)
        path.append(origin)
        self._emit(0, origin, "start")

        assignment = self.source.fetch_assignment(start.id, start.discriminator)
        if assignment is not None and assignment.linked_task_id is not None:
            target = EntityRef(EntityKind.TASK, assignment.linked_task_id)
            self._emit(0, origin, "move", target=target, detail="linked task")
            return target

        origin = EntityRef(EntityKind.TASK, start.id)
        path.append(origin)
        self._emit(0, origin, "start", detail="assignment has no task link, checking tasks")
        task = self.source.fetch_task(start.id, start.discriminator)
        if task is None or (task.parent_task_id is None and task.parent_assignment_id is None):
            raise NoParentError("No parent elements found, the root task cannot be determined", origin)

        if task.parent_task_id is not None:
            target = EntityRef(EntityKind.TASK, task.parent_task_id)
            detail = "parent task"
        else:
            target = EntityRef(EntityKind.ASSIGNMENT, task.parent_assignment_id)
            detail = "parent assignment"
        self._emit(0, origin, "move", target=target, detail=detail)
        return target

    def _step_task(self, task_id: int) -> EntityRef | int:
        ref = EntityRef(EntityKind.TASK, task_id)
        task = self.source.fetch_task(task_id)
        if task is None:
            raise MissingRecordError(f"Task with ID={task_id} not found", ref)
        if task.is_root:
            return task.root_task_id
        if task.parent_task_id is not None:
            return EntityRef(EntityKind.TASK, task.parent_task_id)
        if task.parent_assignment_id is not None:
            return EntityRef(EntityKind.ASSIGNMENT, task.parent_assignment_id)
        raise BrokenLinkError(f"Task ID={task_id} has no links (ParentTask and ParentAsg are empty)", ref)

    def _step_assignment(self, assignment_id: int) -> EntityRef:
        ref = EntityRef(EntityKind.ASSIGNMENT, assignment_id)
        assignment = self.source.fetch_assignment(assignment_id)
        if assignment is None or assignment.linked_task_id is None:
            raise BrokenLinkError(f"Assignment ID={assignment_id} has no task link (task is empty)", ref)
        return EntityRef(EntityKind.TASK, assignment.linked_task_id)
