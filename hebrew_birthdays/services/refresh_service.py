import logging
from datetime import date
from typing import Any, Dict, Optional, Union

from ..config import REFRESH_RATE_LIMIT_MAX_REQUESTS, REFRESH_RATE_LIMIT_WINDOW_SECONDS
from ..core.birthday_calculations import calculate_all
from ..core.calendar_dates import local_today, to_date
from ..core.exceptions import (
    ConversionError,
    InvalidArgument,
    MissingBirthDate,
    PermissionDenied,
    RefreshFailed,
    Unauthenticated,
)
from ..core.models import BirthdayCalculations, BirthRecord
from ..database.supabase_client import SupabaseClient
from .rate_limiter import SlidingWindowRateLimiter
from .sync_service import BirthdaySyncService

logger = logging.getLogger(__name__)


class RefreshService:
    """Authenticated, rate-limited recompute of one birthday's Hebrew dates."""

    def __init__(
        self,
        db_client: Optional[SupabaseClient] = None,
        sync_service: Optional[BirthdaySyncService] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.db = db_client or SupabaseClient()
        self.sync = sync_service or BirthdaySyncService(db_client=self.db)
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            self.db,
            max_requests=REFRESH_RATE_LIMIT_MAX_REQUESTS,
            window_seconds=REFRESH_RATE_LIMIT_WINDOW_SECONDS,
        )

    @staticmethod
    def _require_arguments(user_id: Optional[str], birthday_id: Optional[str], tenant_id: Optional[str]) -> None:
        if not user_id:
            raise Unauthenticated("User must be authenticated")
        if not birthday_id or not tenant_id:
            raise InvalidArgument("birthday_id and tenant_id are required")

    def authorize(self, user_id: str, birthday_id: str, tenant_id: str) -> BirthRecord:
        """
        Load the birthday and check the caller may act on it.

        A missing record is reported exactly like a foreign one.

        Raises:
            PermissionDenied: record missing, in another tenant, or caller not a member
        """
        row = self.db.get_birthday(birthday_id)
        if not row:
            raise PermissionDenied("Birthday not found or access denied")

        record = BirthRecord.coerce(row)
        if record.tenant_id != str(tenant_id):
            logger.warning(
                "User %s asked for birthday %s under tenant %s, owned by %s",
                user_id, birthday_id, tenant_id, record.tenant_id,
            )
            raise PermissionDenied("Birthday not found or access denied")

        if not self.db.is_tenant_member(user_id, tenant_id):
            raise PermissionDenied("Birthday not found or access denied")
        return record

    def refresh_birthday(
        self,
        user_id: Optional[str],
        birthday_id: Optional[str],
        tenant_id: Optional[str],
        reference_date: Optional[Union[date, str]] = None,
    ) -> Dict[str, Any]:
        """
        Force a recompute of one birthday, bypassing the staleness check.

        Checks run in order: authentication, arguments, per-caller rate
        limit, then record ownership.

        Raises:
            Unauthenticated, InvalidArgument, RateLimited, PermissionDenied,
            RefreshFailed
        """
        self._require_arguments(user_id, birthday_id, tenant_id)
        self.rate_limiter.check(f"{user_id}_refresh")
        record = self.authorize(user_id, birthday_id, tenant_id)

        try:
            result = self.sync.refresh(record, reference_date)
        except (ConversionError, MissingBirthDate) as e:
            logger.error("Refresh of birthday %s failed: %s", birthday_id, e)
            raise RefreshFailed("Failed to refresh Hebrew dates") from e

        response: Dict[str, Any] = {
            "success": True,
            "birthday_id": record.id,
            "status": result.status,
        }
        if result.fields is not None:
            response.update(result.fields.to_row())
        return response

    def get_calculations(
        self,
        user_id: Optional[str],
        birthday_id: Optional[str],
        tenant_id: Optional[str],
        reference_date: Optional[Union[date, str]] = None,
    ) -> BirthdayCalculations:
        self._require_arguments(user_id, birthday_id, tenant_id)
        record = self.authorize(user_id, birthday_id, tenant_id)
        today = to_date(reference_date) or local_today()

        try:
            current_year = self.sync.hebcal.current_hebrew_year(today)
        except ConversionError as e:
            logger.warning("Using approximate Hebrew year for calculations: %s", e)
            current_year = None
        return calculate_all(record, today, current_year)
