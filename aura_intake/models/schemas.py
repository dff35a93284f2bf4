"""API request and response models, plus the lead/contact records persisted to Supabase."""
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def _string_or(value: Any, default: str | None) -> str | None:
    """Only strings count as provided; anything else falls back to the default."""
    return value if isinstance(value, str) else default


class LeadDraft(BaseModel):
    """Lead details proposed by the chat agent or posted to /api/leads. Not yet validated."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    project_type: str = Field("", alias="projectType")
    budget: str | None = None
    timeline: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "LeadDraft":
        data = payload if isinstance(payload, dict) else {}
        return cls(
            name=_string_or(data.get("name"), ""),
            project_type=_string_or(data.get("projectType"), ""),
            budget=_string_or(data.get("budget"), None),
            timeline=_string_or(data.get("timeline"), None),
        )

    def to_record(self) -> "LeadRecord":
        return LeadRecord(**self.model_dump())


class LeadRecord(LeadDraft):
    """Persisted form of a chat lead (table `leads`)."""

    source: Literal["chat"] = "chat"


class ContactDraft(BaseModel):
    """Static contact form submission posted to /api/contact. Not yet validated."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    email: str = ""
    project_type: str = Field("", alias="projectType")
    message: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "ContactDraft":
        data = payload if isinstance(payload, dict) else {}
        return cls(
            name=_string_or(data.get("name"), ""),
            email=_string_or(data.get("email"), ""),
            project_type=_string_or(data.get("projectType"), ""),
            message=_string_or(data.get("message"), ""),
        )

    def to_record(self) -> "ContactRecord":
        return ContactRecord(**self.model_dump())


class ContactRecord(ContactDraft):
    """Persisted form of a contact form submission (table `contacts`)."""

    source: Literal["contact"] = "contact"


class ApiResult(BaseModel):
    ok: bool = Field(..., description="True when the record was stored")
    error: str | None = Field(None, description="Reason when ok is false")


class ChatMessageRequest(BaseModel):
    message: str = Field(..., description="User message for the intake agent")


class GroundingReferenceOut(BaseModel):
    kind: Literal["web", "location"]
    title: str
    uri: str


class ChatMessageOut(BaseModel):
    id: str
    role: Literal["user", "assistant"]
    text: str
    streaming: bool
    grounding: list[GroundingReferenceOut] = Field(default_factory=list)


class ChatSessionResponse(BaseModel):
    session_id: str = Field(..., description="Session id (use for follow-up messages)")
    ready: bool = Field(..., description="False when the model could not be reached; call /initialize to retry")
    busy: bool = Field(..., description="True while a reply is still streaming")
    lead_submitted: bool = Field(..., description="True once a lead from this chat was stored")
    messages: list[ChatMessageOut]
