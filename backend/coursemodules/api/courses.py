"""Course context endpoints — course creation and enrollments."""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from coursemodules.api.auth import get_current_user
from coursemodules.api.errors import raise_for_result
from coursemodules.application.course_app_service import CourseAppService
from coursemodules.container import get_course_app_service
from coursemodules.domain.course_module.models import Course

router = APIRouter(prefix="/api/v1/courses", tags=["courses"])


class CourseBody(BaseModel):
    name: Optional[str] = None
    draft_mode: bool = False


class EnrollmentBody(BaseModel):
    user_id: str
    role: str = "student"


def _serialize_course(c: Course) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "draft_mode": c.draft_mode,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_course(
    body: CourseBody,
    svc: CourseAppService = Depends(get_course_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.create_course(current_user, body.name, body.draft_mode)
    if not result.is_success:
        raise_for_result(result)
    return _serialize_course(result.value)


@router.get("/{course_id}")
def get_course(
    course_id: int,
    svc: CourseAppService = Depends(get_course_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.get_course(current_user, course_id)
    if not result.is_success:
        raise_for_result(result)
    return _serialize_course(result.value)


@router.post("/{course_id}/enrollments", status_code=status.HTTP_201_CREATED)
def enroll_user(
    course_id: int,
    body: EnrollmentBody,
    svc: CourseAppService = Depends(get_course_app_service),
    current_user: dict = Depends(get_current_user),
):
    result = svc.enroll(current_user, course_id, body.user_id, body.role)
    if not result.is_success:
        raise_for_result(result)
    return {"course_id": course_id, "user_id": body.user_id, "role": result.value}
