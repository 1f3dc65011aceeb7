"""Module item endpoints — item authoring and student progress."""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from coursemodules.api.auth import get_current_user
from coursemodules.api.errors import raise_for_result
from coursemodules.application.module_app_service import ModuleAppService
from coursemodules.container import get_module_app_service
from coursemodules.domain.course_module.models import ModuleItem

router = APIRouter(prefix="/api/v1/courses/{course_id}/modules/{module_id}/items", tags=["module items"])

PROGRESS_EVENTS = {"start", "complete"}


class ItemBody(BaseModel):
    title: Optional[str] = None
    required: bool = True


class ProgressBody(BaseModel):
    event: str


def _serialize_item(item: ModuleItem) -> dict:
    return {
        "id": item.id,
        "module_id": item.module_id,
        "title": item.title,
        "position": item.position,
        "required": item.required,
    }


@router.get("")
def list_items(
    course_id: int,
    module_id: int,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.list_items(current_user, course_id, module_id)
    if not result.is_success:
        raise_for_result(result)
    return [_serialize_item(i) for i in result.value]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_item(
    course_id: int,
    module_id: int,
    body: ItemBody,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.add_item(current_user, course_id, module_id, title=body.title, required=body.required)
    if not result.is_success:
        raise_for_result(result)
    return _serialize_item(result.value)


@router.post("/{item_id}/progress")
def record_progress(
    course_id: int,
    module_id: int,
    item_id: int,
    body: ProgressBody,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    if body.event not in PROGRESS_EVENTS:
        raise HTTPException(status_code=400, detail="invalid event")
    result = svc.record_item_progress(
        current_user, course_id, module_id, item_id, completed=body.event == "complete"
    )
    if not result.is_success:
        raise_for_result(result)
    progression = result.value
    return {
        "module_id": progression.module_id,
        "state": progression.state.value,
        "completed_at": progression.completed_at.isoformat() if progression.completed_at else None,
    }
