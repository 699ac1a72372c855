"""Data models for maintask finder."""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class ConnectionCredentials:
    """Parameters for one database session, optionally through an SSH tunnel."""

    use_tunnel: bool = False
    tunnel_host: str = ""
    tunnel_port: int = 22
    tunnel_user: str = ""
    tunnel_password: str = field(default="", repr=False)
    db_host: str = ""
    db_port: int = 5432
    db_name: str = ""
    db_user: str = ""
    db_password: str = field(default="", repr=False)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConnectionCredentials":
        """Build credentials from a serialized record.

        Unknown keys are rejected so a payload from another tool is not mistaken
        for a valid session.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown credential fields: {sorted(unknown)}")
        creds = cls(**data)
        if not isinstance(creds.use_tunnel, bool):
            raise ValueError("use_tunnel must be a boolean")
        for name in ("tunnel_port", "db_port"):
            if not isinstance(getattr(creds, name), int):
                raise ValueError(f"{name} must be an integer")
        return creds


class EntityKind(Enum):
    """The two record kinds a traversal moves between."""

    ASSIGNMENT = "assignment"
    TASK = "task"


@dataclass(frozen=True)
class EntityRef:
    """Current position of a traversal."""

    kind: EntityKind
    id: int

    def __str__(self) -> str:
        return f"{self.kind.value} ID={self.id}"


@dataclass(frozen=True)
class StartRef:
    """A parsed starting reference: record id plus its type discriminator."""

    id: int
    discriminator: UUID


@dataclass(frozen=True)
class AssignmentRecord:
    """Row of the assignment table relevant to traversal."""

    id: int
    linked_task_id: int | None = None
    discriminator: UUID | None = None


@dataclass(frozen=True)
class TaskRecord:
    """Row of the task table relevant to traversal.

    A ``root_task_id`` of 0 means the column was NULL.
    """

    id: int
    root_task_id: int = 0
    parent_task_id: int | None = None
    parent_assignment_id: int | None = None
    discriminator: UUID | None = None

    @property
    def is_root(self) -> bool:
        return self.root_task_id == self.id


@dataclass(frozen=True)
class ResolutionStep:
    """A progress event emitted by the resolver.

    ``event`` is one of ``start``, ``move``, ``found`` or ``failed``;
    ``target`` is the next position for ``move`` events.
    """

    iteration: int
    ref: EntityRef
    event: str
    target: EntityRef | None = None
    detail: str = ""
