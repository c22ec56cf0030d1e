import logging
import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from ...core.exceptions import (
    InvalidArgument,
    PermissionDenied,
    RateLimited,
    RefreshFailed,
    Unauthenticated,
)
from ...core.models import BirthdayCalculations
from ...services.refresh_service import RefreshService
from ..deps import get_current_user_id, get_refresh_service

router = APIRouter(prefix="/birthdays", tags=["birthdays"])
logger = logging.getLogger(__name__)

REFRESH_FAILED_MESSAGE = "Failed to refresh Hebrew dates"


class RefreshRequest(BaseModel):
    tenant_id: Optional[str] = None


def _error(status_code: int, code: str, message: str, headers: Optional[Dict[str, str]] = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message}, headers=headers)


def _raise_for_access(exc: Exception) -> None:
    if isinstance(exc, Unauthenticated):
        raise _error(401, "unauthenticated", str(exc))
    if isinstance(exc, InvalidArgument):
        raise _error(400, "invalid-argument", str(exc))
    if isinstance(exc, RateLimited):
        retry_after = math.ceil(exc.retry_after) if exc.retry_after is not None else None
        headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
        raise _error(429, "resource-exhausted", str(exc), headers=headers)
    if isinstance(exc, PermissionDenied):
        raise _error(403, "permission-denied", str(exc))


@router.post("/{birthday_id}/refresh")
def refresh_birthday(
    birthday_id: str,
    body: Optional[RefreshRequest] = None,
    user_id: Optional[str] = Depends(get_current_user_id),
    svc: RefreshService = Depends(get_refresh_service),
) -> Dict[str, Any]:
    """Recompute one birthday's Hebrew dates now"""
    try:
        return svc.refresh_birthday(user_id, birthday_id, body.tenant_id if body else None)
    except (Unauthenticated, InvalidArgument, RateLimited, PermissionDenied) as exc:
        _raise_for_access(exc)
        raise
    except RefreshFailed as exc:
        raise _error(500, "internal", str(exc))
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error refreshing birthday %s", birthday_id)
        raise _error(500, "internal", REFRESH_FAILED_MESSAGE)


@router.get("/{birthday_id}/calculations", response_model=BirthdayCalculations)
def birthday_calculations(
    birthday_id: str,
    tenant_id: Optional[str] = Query(None),
    user_id: Optional[str] = Depends(get_current_user_id),
    svc: RefreshService = Depends(get_refresh_service),
) -> BirthdayCalculations:
    try:
        return svc.get_calculations(user_id, birthday_id, tenant_id)
    except (Unauthenticated, InvalidArgument, PermissionDenied) as exc:
        _raise_for_access(exc)
        raise
