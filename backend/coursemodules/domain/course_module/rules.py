"""Business rules for the course module domain — input resolution and prerequisite validity."""
from __future__ import annotations
import re
from typing import Any, Dict, Iterable, List, Optional

from coursemodules.domain.common.result import (
    INVALID_EVENT,
    INVALID_POSITION,
    MISSING_PARAMETER,
    Result,
)
from coursemodules.domain.course_module.models import BatchEvent, CourseModule

MAX_NAME_LENGTH = 255

_INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")


def validate_module_name(name: Optional[str]) -> Result[str]:
    """A module needs a non-blank name."""
    cleaned = (name or "").strip()
    if not cleaned:
        return Result.fail("missing module name", code=MISSING_PARAMETER, field="name")
    if len(cleaned) > MAX_NAME_LENGTH:
        return Result.fail(
            f"Module name cannot be longer than {MAX_NAME_LENGTH} characters.",
            field="name",
        )
    return Result.ok(cleaned)


def resolve_position(value: Any) -> Result[int]:
    """
    Turn a client-supplied position into an integer slot.
    Accepts ints, integral floats and numeric strings; clamping happens later.
    """
    if isinstance(value, bool) or value is None:
        return Result.fail("Invalid position", code=INVALID_POSITION, field="position")
    if isinstance(value, int):
        return Result.ok(value)
    if isinstance(value, float) and value.is_integer():
        return Result.ok(int(value))
    if isinstance(value, str) and _INTEGER_RE.match(value):
        return Result.ok(int(value))
    return Result.fail("Invalid position", code=INVALID_POSITION, field="position")


def parse_event(value: Optional[str]) -> Result[BatchEvent]:
    if not value:
        return Result.fail("need to specify event", code=MISSING_PARAMETER, field="event")
    try:
        return Result.ok(BatchEvent(value))
    except ValueError:
        return Result.fail("invalid event", code=INVALID_EVENT, field="event")


def map_module_ids(values: Iterable[Any]) -> List[int]:
    """Keep the values that can be module ids, dropping the rest. Order is preserved, duplicates removed."""
    ids: List[int] = []
    for value in values:
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            candidate = value
        elif isinstance(value, str) and value.strip().isdigit():
            candidate = int(value)
        else:
            continue
        if candidate not in ids:
            ids.append(candidate)
    return ids


def normalize_prerequisite_ids(values: Iterable[int]) -> List[int]:
    seen: List[int] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def valid_prerequisites(module: CourseModule, modules: Iterable[CourseModule]) -> List[CourseModule]:
    """
    The prerequisites that actually gate ``module``: non-deleted modules of the
    same course positioned strictly before it. Anything else is ignored.
    """
    by_id: Dict[int, CourseModule] = {
        m.id: m for m in modules if not m.is_deleted and m.course_id == module.course_id
    }
    prerequisites = []
    for prereq_id in module.prerequisite_module_ids:
        prereq = by_id.get(prereq_id)
        if prereq is None or prereq.id == module.id:
            continue
        if prereq.position >= module.position:
            continue
        prerequisites.append(prereq)
    return prerequisites
