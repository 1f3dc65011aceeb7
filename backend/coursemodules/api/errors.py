"""Maps failed application results onto HTTP errors."""
from __future__ import annotations
from typing import Any, NoReturn

from fastapi import HTTPException, status

from coursemodules.domain.common.result import (
    FORBIDDEN,
    INVALID_EVENT,
    INVALID_POSITION,
    LOCKED,
    MISSING_PARAMETER,
    NO_MODULES_FOUND,
    NOT_FOUND,
    VALIDATION_ERROR,
    Result,
)

_STATUS_BY_CODE = {
    INVALID_POSITION: status.HTTP_400_BAD_REQUEST,
    INVALID_EVENT: status.HTTP_400_BAD_REQUEST,
    MISSING_PARAMETER: status.HTTP_400_BAD_REQUEST,
    VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    NO_MODULES_FOUND: status.HTTP_404_NOT_FOUND,
    NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FORBIDDEN: status.HTTP_403_FORBIDDEN,
    LOCKED: status.HTTP_403_FORBIDDEN,
}


def raise_for_result(result: Result[Any]) -> NoReturn:
    """Field-level failures come back as {"errors": {field: [message]}}, the rest as a plain message."""
    status_code = _STATUS_BY_CODE.get(result.code, status.HTTP_400_BAD_REQUEST)
    if result.field and result.code in (INVALID_POSITION, VALIDATION_ERROR):
        raise HTTPException(status_code=status_code, detail={"errors": {result.field: [result.error]}})
    raise HTTPException(status_code=status_code, detail=result.error)
