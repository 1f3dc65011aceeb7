"""Dependency injection container — wires implementations to interfaces."""
from __future__ import annotations
from functools import lru_cache

from coursemodules.application.authorization import AuthorizationService
from coursemodules.application.course_app_service import CourseAppService
from coursemodules.application.module_app_service import ModuleAppService
from coursemodules.persistence.repositories.sqlite.sqlite_course_repository import SqliteCourseRepository
from coursemodules.persistence.repositories.sqlite.sqlite_item_repository import SqliteItemRepository
from coursemodules.persistence.repositories.sqlite.sqlite_module_repository import SqliteModuleRepository
from coursemodules.persistence.repositories.sqlite.sqlite_user_repository import SqliteUserRepository


@lru_cache(maxsize=1)
def get_module_repo() -> SqliteModuleRepository:
    return SqliteModuleRepository()


@lru_cache(maxsize=1)
def get_course_repo() -> SqliteCourseRepository:
    return SqliteCourseRepository()


@lru_cache(maxsize=1)
def get_item_repo() -> SqliteItemRepository:
    return SqliteItemRepository()


@lru_cache(maxsize=1)
def get_user_repo() -> SqliteUserRepository:
    return SqliteUserRepository()


@lru_cache(maxsize=1)
def get_authorization_service() -> AuthorizationService:
    return AuthorizationService(courses=get_course_repo())


@lru_cache(maxsize=1)
def get_module_app_service() -> ModuleAppService:
    return ModuleAppService(
        modules=get_module_repo(),
        courses=get_course_repo(),
        items=get_item_repo(),
        authorization=get_authorization_service(),
    )


@lru_cache(maxsize=1)
def get_course_app_service() -> CourseAppService:
    return CourseAppService(courses=get_course_repo(), authorization=get_authorization_service())
