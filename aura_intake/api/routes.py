"""FastAPI routes for storing leads (chat widget) and contact requests (static form)."""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from aura_intake.api.deps import get_lead_store
from aura_intake.core.supabase_client import LeadStore, PersistResult, PersistStatus
from aura_intake.core.validation import validate_contact, validate_lead
from aura_intake.models.schemas import ApiResult, ContactDraft, LeadDraft

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["leads"])

INVALID_JSON = "Invalid JSON"

# Kept distinct so operators can tell a broken deployment from a rejected row
_PERSIST_ERRORS = {
    PersistStatus.MISCONFIGURED: "Server misconfigured",
    PersistStatus.INSERT_FAILED: "Database insert failed",
}


def _reply(status_code: int, error: str | None = None) -> JSONResponse:
    body = ApiResult(ok=error is None, error=error).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code)


def _persisted(outcome: PersistResult) -> JSONResponse:
    if outcome.ok:
        return _reply(200)
    return _reply(500, _PERSIST_ERRORS[outcome.status])


@router.post("/leads", response_model=ApiResult)
async def submit_lead(request: Request, store: LeadStore = Depends(get_lead_store)) -> JSONResponse:
    """Store a lead captured by the chat widget (source=chat)."""
    try:
        body = await request.json()
    except ValueError:
        return _reply(400, INVALID_JSON)
    result = validate_lead(LeadDraft.from_payload(body))
    if not result.ok:
        logger.info("Lead rejected: %s", result.reason)
        return _reply(400, result.reason)
    outcome = await run_in_threadpool(store.persist_lead, result.draft.to_record())
    return _persisted(outcome)


@router.post("/contact", response_model=ApiResult)
async def submit_contact(request: Request, store: LeadStore = Depends(get_lead_store)) -> JSONResponse:
    """Store a contact form submission (source=contact)."""
    try:
        body = await request.json()
    except ValueError:
        return _reply(400, INVALID_JSON)
    result = validate_contact(ContactDraft.from_payload(body))
    if not result.ok:
        logger.info("Contact rejected: %s", result.reason)
        return _reply(400, result.reason)
    outcome = await run_in_threadpool(store.persist_contact, result.draft.to_record())
    return _persisted(outcome)


@router.get("/health")
def health() -> dict:
    """Health check."""
    return {"status": "ok"}
