"""
Pydantic models for tasktree.

Defines the task record owned by the surrounding view, the relative position
updates exchanged with the ordering authority, and the derived tree and row
structures used for rendering and drag-and-drop.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator


class TaskStatus(str, Enum):
    """Workflow status of a task. Only the visibility filter looks at it."""
    NEW_TASK = "new_task"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUCCESSFULLY_COMPLETED = "successfully_completed"
    CANCELLED = "cancelled"


class DropMode(str, Enum):
    """How a drop relates to its target row."""
    REORDER = "reorder"  # Between rows (edge of the target)
    NEST = "nest"        # Onto the body of the target row


class DropEdge(str, Enum):
    """Which edge of the target row a reorder drop landed on."""
    ABOVE = "above"
    BELOW = "below"


class Task(BaseModel):
    """
    Represents a single orderable task nested under a job.

    ``parent_id`` defines the task's scope: all tasks sharing the same
    ``parent_id`` (``None`` for the root scope) form one sibling group whose
    positions are exactly ``1..N``.
    """

    id: str = Field(..., min_length=1, description="Opaque stable identifier")
    title: str = Field(default="", max_length=500, description="Task title")
    status: TaskStatus = Field(default=TaskStatus.NEW_TASK, description="Workflow status")

    # Hierarchy
    parent_id: Optional[str] = Field(default=None, description="Parent task ID (scope)")
    position: int = Field(default=1, ge=1, description="Dense 1-based order within scope")

    job_id: Optional[str] = Field(default=None, description="Owning job ID")
    discarded_at: Optional[datetime] = Field(default=None, description="Soft-delete timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "7f1c0a3e-2b7d-4c19-9a55-1f0e6d8b2c41",
                "title": "Replace failed drive",
                "status": "in_progress",
                "parent_id": None,
                "position": 1,
                "job_id": "0b9f6a52-6f3e-4d1b-8a8e-5d2f3c4b1a00",
            }
        }
    )

    @computed_field
    @property
    def is_discarded(self) -> bool:
        """Whether the task has been soft-deleted."""
        return self.discarded_at is not None


class RelativePositionUpdate(BaseModel):
    """
    Anchor-relative placement of one task, the unit sent to the authority.

    Exactly one of ``after_task_id``, ``before_task_id`` or ``position``
    ("first"/"last") is set. Anchors survive the authority's own renumbering,
    so the client never needs to know its absolute integers in advance.
    """

    id: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    after_task_id: Optional[str] = None
    before_task_id: Optional[str] = None
    position: Optional[Literal["first", "last"]] = None

    @model_validator(mode='after')
    def validate_single_anchor(self) -> 'RelativePositionUpdate':
        """
        Validate that exactly one anchor is provided.

        Raises:
            ValueError: If zero or several anchors are set
        """
        anchors = [
            a for a in (self.after_task_id, self.before_task_id, self.position)
            if a is not None
        ]
        if len(anchors) != 1:
            raise ValueError(
                "Exactly one of after_task_id, before_task_id or position must be set"
            )
        return self

    @property
    def anchor_id(self) -> Optional[str]:
        """The referenced task ID, or None for first/last anchors."""
        return self.after_task_id or self.before_task_id

    def describe_anchor(self) -> str:
        """Short human-readable anchor description for logs."""
        if self.after_task_id:
            return f"after {self.after_task_id}"
        if self.before_task_id:
            return f"before {self.before_task_id}"
        return self.position

    def to_payload(self) -> dict:
        """Wire representation handed to the transport collaborator."""
        payload = self.model_dump(exclude_none=True)
        payload["parent_id"] = self.parent_id
        return payload


class DropZoneDescriptor(BaseModel):
    """Abstract drop target produced by the drag-gesture collaborator."""

    mode: DropMode
    target_task_id: Optional[str] = None
    edge: Optional[DropEdge] = None


class ResolvedDrop(BaseModel):
    """A drop zone after parent scope and insertion point have been resolved."""

    mode: DropMode
    parent_id: Optional[str] = None
    insertion_index: int = Field(..., ge=0, description="Index into the flattened rows")
    target_task_id: Optional[str] = None


class TaskNode(BaseModel):
    """A visible task with its visible, position-sorted subtasks."""

    task: Task
    subtasks: List["TaskNode"] = Field(default_factory=list)


class FlatRow(BaseModel):
    """One row of the flattened, depth-annotated render sequence."""

    task: Task
    depth: int = Field(..., ge=0)
    has_subtasks: bool = False
    is_expanded: bool = False
    parent_id: Optional[str] = Field(
        default=None,
        description="Effective parent in the organized tree (None for roots and orphans)"
    )


class PositionOperation(BaseModel):
    """One position change made while applying a relative update."""

    type: Literal["gap-elimination", "insertion"]
    scope: Optional[str] = None
    task_id: str
    old_position: int
    new_position: int
    reason: str


class PredictedPlacement(BaseModel):
    """The concrete result of applying one relative update."""

    id: str
    position: int
    parent_id: Optional[str] = None
