"""
Tools declared to the intake agent.

Lead capture: submitProjectLead
"""
from aura_tools.leads import (
    SUBMIT_PROJECT_LEAD,
    SUBMIT_PROJECT_LEAD_TOOL,
    SubmitProjectLead,
    ToolDeclaration,
    ToolInvocation,
    UnknownTool,
    parse_tool_call,
)

# Flat list for binding to the chat model
LEAD_TOOLS = [SUBMIT_PROJECT_LEAD_TOOL]

__all__ = [
    "LEAD_TOOLS",
    "SUBMIT_PROJECT_LEAD",
    "SUBMIT_PROJECT_LEAD_TOOL",
    "SubmitProjectLead",
    "ToolDeclaration",
    "ToolInvocation",
    "UnknownTool",
    "parse_tool_call",
]
