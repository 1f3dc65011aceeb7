"""Course module API endpoints — list, show, create, update, delete and batch update."""
from __future__ import annotations
from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from coursemodules.api.auth import get_current_user
from coursemodules.api.errors import raise_for_result
from coursemodules.api.pagination import PageParams, link_header, page_params
from coursemodules.application.module_app_service import ModuleAppService
from coursemodules.container import get_module_app_service
from coursemodules.domain.course_module.models import CourseModule, ModuleProgression, ModuleUpdate
from coursemodules.domain.course_module.rules import map_module_ids

router = APIRouter(prefix="/api/v1/courses/{course_id}/modules", tags=["modules"])


# ------------------------------------------------------------------
# Pydantic schemas
# ------------------------------------------------------------------
class ModuleBody(BaseModel):
    name: Optional[str] = None
    unlock_at: Optional[datetime] = None
    # Kept loose so an unusable value is reported as an invalid position.
    position: Optional[Union[int, float, str]] = None
    require_sequential_progress: Optional[bool] = None
    # Unusable ids are dropped rather than rejected.
    prerequisite_module_ids: Optional[List[Union[int, str]]] = None
    publish: bool = False
    unpublish: bool = False

    def to_update(self) -> ModuleUpdate:
        return ModuleUpdate(
            name=self.name,
            unlock_at=self.unlock_at,
            require_sequential_progress=self.require_sequential_progress,
            prerequisite_module_ids=(
                map_module_ids(self.prerequisite_module_ids)
                if self.prerequisite_module_ids is not None
                else None
            ),
            position=self.position,
            publish=self.publish,
            unpublish=self.unpublish,
            clear_unlock_at="unlock_at" in self.model_fields_set and self.unlock_at is None,
        )


class BatchUpdateBody(BaseModel):
    event: Optional[str] = None
    module_ids: Optional[List[Union[int, str]]] = None


# ------------------------------------------------------------------
# Serializers
# ------------------------------------------------------------------
def serialize_module(m: CourseModule, progression: Optional[ModuleProgression] = None) -> dict:
    data = {
        "id": m.id,
        "workflow_state": m.workflow_state.value,
        "position": m.position,
        "name": m.name,
        "unlock_at": m.unlock_at.isoformat() if m.unlock_at else None,
        "require_sequential_progress": m.require_sequential_progress,
        "prerequisite_module_ids": m.prerequisite_module_ids,
    }
    if progression is not None:
        data["state"] = progression.state.value
        data["completed_at"] = progression.completed_at.isoformat() if progression.completed_at else None
    return data


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------
@router.get("")
def list_modules(
    course_id: int,
    request: Request,
    response: Response,
    params: PageParams = Depends(page_params),
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.list_modules(current_user, course_id, page=params.page, per_page=params.per_page)
    if not result.is_success:
        raise_for_result(result)
    response.headers["Link"] = link_header(request, params, result.value.total)
    return [serialize_module(m, prog) for m, prog in result.value.entries]


@router.get("/{module_id}")
def get_module(
    course_id: int,
    module_id: int,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.get_module(current_user, course_id, module_id)
    if not result.is_success:
        raise_for_result(result)
    module, progression = result.value
    return serialize_module(module, progression)


@router.put("")
def batch_update(
    course_id: int,
    body: BatchUpdateBody,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.batch_update(current_user, course_id, event=body.event, module_ids=body.module_ids)
    if not result.is_success:
        raise_for_result(result)
    return {"completed": result.value}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_module(
    course_id: int,
    body: ModuleBody,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.create_module(current_user, course_id, body.to_update())
    if not result.is_success:
        raise_for_result(result)
    return serialize_module(result.value)


@router.put("/{module_id}")
def update_module(
    course_id: int,
    module_id: int,
    body: ModuleBody,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.update_module(current_user, course_id, module_id, body.to_update())
    if not result.is_success:
        raise_for_result(result)
    return serialize_module(result.value)


@router.delete("/{module_id}")
def delete_module(
    course_id: int,
    module_id: int,
    svc: ModuleAppService = Depends(get_module_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.delete_module(current_user, course_id, module_id)
    if not result.is_success:
        raise_for_result(result)
    return serialize_module(result.value)
