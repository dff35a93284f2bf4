"""Supabase client and lead/contact persistence. Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (use the service role key, not anon)."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from supabase import PostgrestAPIError

from aura_intake.core.config import get_settings
from aura_intake.models.schemas import ContactRecord, LeadRecord

logger = logging.getLogger(__name__)

LEADS_TABLE = "leads"
CONTACTS_TABLE = "contacts"

_supabase = None


def get_supabase_client():
    """Return the Supabase client or None if disabled or it could not be created."""
    global _supabase
    if _supabase is not None:
        return _supabase
    settings = get_settings()
    if not settings.supabase_enabled:
        logger.info(
            "Supabase disabled: SUPABASE_URL and/or SUPABASE_SERVICE_ROLE_KEY not set or empty. "
            "Leads and contacts cannot be stored."
        )
        return None
    try:
        from supabase import ClientOptions, create_client
        _supabase = create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(postgrest_client_timeout=settings.supabase_timeout_seconds),
        )
        logger.info("Supabase client connected (lead persistence enabled).")
        return _supabase
    except Exception as e:
        logger.warning("Supabase client failed to connect: %s. Lead persistence disabled.", e)
        return None


class PersistStatus(str, Enum):
    OK = "ok"
    MISCONFIGURED = "misconfigured"
    INSERT_FAILED = "insert_failed"


@dataclass(frozen=True)
class PersistResult:
    status: PersistStatus
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is PersistStatus.OK


class LeadStore:
    """One insert per call, no retry, no dedup. Never raises: failures come back as a PersistResult."""

    def __init__(self, client_factory: Callable[[], Any] = get_supabase_client):
        self._client_factory = client_factory

    def persist_lead(self, record: LeadRecord) -> PersistResult:
        return self._insert(LEADS_TABLE, record.model_dump())

    def persist_contact(self, record: ContactRecord) -> PersistResult:
        return self._insert(CONTACTS_TABLE, record.model_dump())

    def _insert(self, table: str, row: dict) -> PersistResult:
        try:
            client = self._client_factory()
        except Exception as e:
            logger.warning("Supabase client unavailable for %s insert: %s", table, e)
            return PersistResult(PersistStatus.MISCONFIGURED, str(e))
        if client is None:
            return PersistResult(PersistStatus.MISCONFIGURED, "Supabase disabled")
        try:
            client.table(table).insert(row).execute()
        except PostgrestAPIError as e:
            logger.error("Supabase insert into %s rejected: %s", table, e.message)
            return PersistResult(PersistStatus.INSERT_FAILED, e.message)
        except Exception as e:
            logger.error("Supabase insert into %s failed: %s", table, e)
            return PersistResult(PersistStatus.MISCONFIGURED, str(e))
        logger.info("Stored %s row (source=%s)", table, row.get("source"))
        return PersistResult(PersistStatus.OK)
