import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from supabase import Client, create_client

from ..config import (
    BATCH_UPDATE_RPC,
    BIRTHDAYS_TABLE,
    RATE_LIMITS_TABLE,
    SUPABASE_KEY,
    SUPABASE_SERVICE_KEY,
    SUPABASE_URL,
    SWEEP_PAGE_SIZE,
    TENANT_MEMBERS_TABLE,
)
from ..core.exceptions import RecordSuperseded, RecordVanished
from ..core.models import DerivedHebrewFields

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _match_inputs(query, expected: Optional[Dict[str, Any]]):
    for column, value in (expected or {}).items():
        if value is None:
            query = query.is_(column, 'null')
        elif isinstance(value, bool):
            query = query.eq(column, 'true' if value else 'false')
        else:
            query = query.eq(column, value)
    return query


class SupabaseClient:
    """Supabase client for birthday, rate-limit and membership tables"""

    def __init__(self, client: Optional[Client] = None):
        """Initialize Supabase client (service key: the sync jobs bypass RLS)"""
        if client is None:
            self.url = SUPABASE_URL
            self.key = SUPABASE_SERVICE_KEY or SUPABASE_KEY

            if not self.url or not self.key:
                raise ValueError("Supabase URL and key must be set in environment variables")

            client = create_client(self.url, self.key)
            logger.info("Supabase client initialized")
        self.client: Client = client

    def get_birthday(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one birthday row by id, or None when it does not exist"""
        try:
            result = self.client.table(BIRTHDAYS_TABLE)\
                .select('*')\
                .eq('id', record_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to load birthday {record_id}: {e}")
            raise
        return result.data[0] if result.data else None

    def update_birthday_fields(
        self,
        record_id: str,
        fields: Dict[str, Any],
        expected: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Update columns of one birthday in a single statement.

        `expected` maps input columns to the values the fields were computed
        from; the row is only written while it still holds them.

        Raises:
            RecordVanished: no row matched (deleted while we were computing)
            RecordSuperseded: the row exists but its inputs changed meanwhile
        """
        payload = {**fields, 'updated_at': _utc_now_iso()}
        try:
            query = self.client.table(BIRTHDAYS_TABLE)\
                .update(payload)\
                .eq('id', record_id)
            result = _match_inputs(query, expected).execute()
        except Exception as e:
            logger.error(f"Failed to update birthday {record_id}: {e}")
            raise

        if not result.data:
            if expected and self.get_birthday(record_id) is not None:
                raise RecordSuperseded(record_id)
            raise RecordVanished(record_id)
        return result.data[0]

    def clear_birthday_hebrew_fields(
        self,
        record_id: str,
        expected: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Null every derived Hebrew column so the row reads as stale"""
        return self.update_birthday_fields(record_id, DerivedHebrewFields.cleared_row(), expected)

    def _fetch_paged(self, build_query, page_size: int) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            result = build_query()\
                .order('id')\
                .range(start, start + page_size - 1)\
                .execute()
            batch = result.data or []
            rows.extend(batch)
            if len(batch) < page_size:
                break
            start += page_size
        return rows

    def list_birthdays_due_for_advance(
        self,
        reference_date: date,
        page_size: int = SWEEP_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """Active birthdays whose next upcoming Hebrew birthday is unset or before `reference_date`"""
        cutoff = reference_date.isoformat()

        def build_query():
            return self.client.table(BIRTHDAYS_TABLE)\
                .select('*')\
                .not_.is_('archived', 'true')\
                .or_(f"next_upcoming_hebrew_birthday.is.null,next_upcoming_hebrew_birthday.lt.{cutoff}")

        try:
            rows = self._fetch_paged(build_query, page_size)
        except Exception as e:
            logger.error(f"Failed to list birthdays due before {cutoff}: {e}")
            raise
        logger.info(f"Found {len(rows)} active birthdays due for advance (cutoff={cutoff})")
        return rows

    def list_birthdays_missing_hebrew_data(
        self,
        page_size: int = SWEEP_PAGE_SIZE,
    ) -> List[Dict[str, Any]]:
        """Active birthdays with a birth date but no Hebrew string or no upcoming date"""

        def build_query():
            return self.client.table(BIRTHDAYS_TABLE)\
                .select('*')\
                .not_.is_('archived', 'true')\
                .not_.is_('birth_date_gregorian', 'null')\
                .or_("birth_date_hebrew_string.is.null,next_upcoming_hebrew_birthday.is.null")

        try:
            return self._fetch_paged(build_query, page_size)
        except Exception as e:
            logger.error(f"Failed to list birthdays missing Hebrew data: {e}")
            raise

    def commit_birthday_batch(self, updates: Sequence[Dict[str, Any]]) -> int:
        """
        Apply many partial birthday updates atomically.

        Each update is {"id": ..., "expected": {...}, <column>: <value>, ...};
        only the listed columns change, and only on rows whose input columns
        still equal "expected". Runs as one PL/pgSQL function call, hence one
        transaction. Returns the number of rows touched.
        """
        if not updates:
            return 0
        try:
            result = self.client.rpc(BATCH_UPDATE_RPC, {'updates': list(updates)}).execute()
        except Exception as e:
            logger.error(f"Failed to commit birthday batch of {len(updates)}: {e}")
            raise
        try:
            return int(result.data or 0)
        except (TypeError, ValueError):
            return len(updates)

    def load_request_timestamps(self, key: str) -> List[float]:
        """Return stored request timestamps (epoch seconds) for a rate-limit key"""
        result = self.client.table(RATE_LIMITS_TABLE)\
            .select('requests')\
            .eq('key', key)\
            .limit(1)\
            .execute()
        if not result.data:
            return []
        return [float(ts) for ts in (result.data[0].get('requests') or [])]

    def save_request_timestamps(self, key: str, timestamps: Sequence[float]) -> None:
        self.client.table(RATE_LIMITS_TABLE).upsert(
            {'key': key, 'requests': list(timestamps), 'updated_at': _utc_now_iso()},
            on_conflict='key'
        ).execute()

    def is_tenant_member(self, user_id: str, tenant_id: str) -> bool:
        try:
            result = self.client.table(TENANT_MEMBERS_TABLE)\
                .select('user_id')\
                .eq('user_id', user_id)\
                .eq('tenant_id', tenant_id)\
                .limit(1)\
                .execute()
        except Exception as e:
            logger.error(f"Failed to check membership of {user_id} in {tenant_id}: {e}")
            raise
        return bool(result.data)

    def get_user_id_for_token(self, access_token: str) -> Optional[str]:
        """Resolve a Supabase access token to its user id, or None if invalid"""
        try:
            response = self.client.auth.get_user(access_token)
        except Exception as e:  # noqa: BLE001
            logger.warning("Access token rejected: %s", e)
            return None
        user = getattr(response, 'user', None)
        return str(user.id) if user else None

    def ping(self) -> bool:
        self.client.table(BIRTHDAYS_TABLE).select('id').limit(1).execute()
        return True
