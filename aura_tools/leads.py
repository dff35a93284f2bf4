"""
Lead tools: the submitProjectLead declaration bound to the chat model, and parsing of
raw invocations into one variant per tool.

The model only sees the declaration. Execution (validate, then store) happens in the
chat session, which owns the Supabase gateway.
"""
from dataclasses import dataclass, field
from typing import Union

from aura_intake.core.events import ToolCall
from aura_intake.models.schemas import LeadDraft

SUBMIT_PROJECT_LEAD = "submitProjectLead"


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    parameters: dict = field(default_factory=dict)  # JSON Schema

    def to_openai(self) -> dict:
        """OpenAI function format, accepted by bind_tools on any LangChain chat model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


SUBMIT_PROJECT_LEAD_TOOL = ToolDeclaration(
    name=SUBMIT_PROJECT_LEAD,
    description=(
        "Save the project lead details to the database when the user has provided "
        "sufficient information (Name, Project Type, Budget, Timeline)."
    ),
    parameters={
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Name of the client"},
            "projectType": {"type": "string", "description": "Type of project (e.g., UI/UX, Web, App)"},
            "budget": {"type": "string", "description": "Estimated budget range"},
            "timeline": {"type": "string", "description": "Desired timeline for the project"},
        },
        "required": ["name", "projectType"],
    },
)


@dataclass(frozen=True)
class SubmitProjectLead:
    call_id: str
    draft: LeadDraft


@dataclass(frozen=True)
class UnknownTool:
    call_id: str
    name: str


ToolInvocation = Union[SubmitProjectLead, UnknownTool]


def parse_tool_call(call: ToolCall) -> ToolInvocation:
    """Map a raw invocation to its tool variant. Non-string arguments count as missing."""
    if call.name == SUBMIT_PROJECT_LEAD:
        return SubmitProjectLead(call_id=call.id, draft=LeadDraft.from_payload(call.arguments))
    return UnknownTool(call_id=call.id, name=call.name)
