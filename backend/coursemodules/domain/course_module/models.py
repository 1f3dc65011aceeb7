"""Course module domain models — pure Python, no DB or HTTP dependencies."""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union


class WorkflowState(str, Enum):
    ACTIVE = "active"
    UNPUBLISHED = "unpublished"
    DELETED = "deleted"


class ProgressionState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    STARTED = "started"
    COMPLETED = "completed"


class BatchEvent(str, Enum):
    PUBLISH = "publish"
    UNPUBLISH = "unpublish"
    DELETE = "delete"


@dataclass
class Course:
    id: int
    name: str
    draft_mode: bool = False
    created_at: str = ""
    updated_at: str = ""


@dataclass
class CourseModule:
    id: int
    course_id: int
    name: str
    position: int
    workflow_state: WorkflowState = WorkflowState.ACTIVE
    unlock_at: Optional[datetime] = None
    require_sequential_progress: bool = False
    prerequisite_module_ids: List[int] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_deleted(self) -> bool:
        return self.workflow_state is WorkflowState.DELETED


@dataclass
class ModuleItem:
    id: int
    module_id: int
    title: str
    position: int
    required: bool = True


@dataclass
class ItemStatus:
    """One user's standing on one module item, as reported by the item-level evaluator."""
    started: bool = False
    completed_at: Optional[datetime] = None

    @property
    def completed(self) -> bool:
        return self.completed_at is not None


@dataclass
class ModuleProgression:
    module_id: int
    user_id: str
    state: ProgressionState
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class ModuleUpdate:
    """The complete set of module fields a client may set.

    ``None`` leaves a field unchanged. An empty ``prerequisite_module_ids``
    list clears the prerequisites; ``clear_unlock_at`` removes the unlock date.
    ``position`` keeps the raw client value so it can be rejected as an
    invalid position rather than as a malformed request.
    """
    name: Optional[str] = None
    unlock_at: Optional[datetime] = None
    require_sequential_progress: Optional[bool] = None
    prerequisite_module_ids: Optional[List[int]] = None
    position: Optional[Union[int, str]] = None
    publish: bool = False
    unpublish: bool = False
    clear_unlock_at: bool = False
