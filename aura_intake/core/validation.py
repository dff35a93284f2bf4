"""Normalize and validate lead and contact payloads before they reach Supabase. Pure functions."""
from dataclasses import dataclass
from typing import Generic, TypeVar

from aura_intake.models.schemas import ContactDraft, LeadDraft

MISSING_FIELDS = "Missing required fields"
INVALID_EMAIL = "Invalid email"

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    """Either a normalized draft or the reason it was rejected."""

    draft: T | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.draft is not None


def _trim(value: str | None) -> str | None:
    return value.strip() if value is not None else None


def validate_lead(draft: LeadDraft) -> ValidationResult[LeadDraft]:
    """Trim every field; name and project type must be non-empty afterwards."""
    normalized = LeadDraft(
        name=draft.name.strip(),
        project_type=draft.project_type.strip(),
        budget=_trim(draft.budget),
        timeline=_trim(draft.timeline),
    )
    if not normalized.name or not normalized.project_type:
        return ValidationResult(reason=MISSING_FIELDS)
    return ValidationResult(draft=normalized)


def validate_contact(draft: ContactDraft) -> ValidationResult[ContactDraft]:
    """Trim every field; name, email and message are required and the email needs an '@'."""
    normalized = ContactDraft(
        name=draft.name.strip(),
        email=draft.email.strip(),
        project_type=draft.project_type.strip(),
        message=draft.message.strip(),
    )
    if not normalized.name or not normalized.email or not normalized.message:
        return ValidationResult(reason=MISSING_FIELDS)
    if "@" not in normalized.email:
        return ValidationResult(reason=INVALID_EMAIL)
    return ValidationResult(draft=normalized)
