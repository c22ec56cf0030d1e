"""
Shared FastAPI dependencies: one client/service instance per process
"""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.hebcal_client import HebcalClient
from ..core.projector import HebrewBirthdayProjector
from ..database.supabase_client import SupabaseClient
from ..services.refresh_service import RefreshService
from ..services.sync_service import BirthdaySyncService
from ..tasks.sweep import HebrewBirthdaySweep

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@lru_cache
def get_supabase_client() -> SupabaseClient:
    return SupabaseClient()


@lru_cache
def get_hebcal_client() -> HebcalClient:
    return HebcalClient()


@lru_cache
def get_projector() -> HebrewBirthdayProjector:
    return HebrewBirthdayProjector(get_hebcal_client())


@lru_cache
def get_sync_service() -> BirthdaySyncService:
    return BirthdaySyncService(
        db_client=get_supabase_client(),
        hebcal_client=get_hebcal_client(),
        projector=get_projector(),
    )


@lru_cache
def get_refresh_service() -> RefreshService:
    return RefreshService(db_client=get_supabase_client(), sync_service=get_sync_service())


def get_sweep() -> HebrewBirthdaySweep:
    return HebrewBirthdaySweep(db_client=get_supabase_client(), projector=get_projector())


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Supabase user id behind the bearer token, or None when absent or invalid.

    Rejection is left to the service so that the authentication check keeps
    its place in the refresh ordering.
    """
    if credentials is None or not credentials.credentials:
        return None
    return get_supabase_client().get_user_id_for_token(credentials.credentials)
