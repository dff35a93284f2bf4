"""
Aura intake agent: prompt text and the chat model it runs on.

The model is built per chat session (see core/session.py), bound to the lead tools, and
streamed. The system prompt is prepended on every turn, not kept in the session history.
"""
from datetime import datetime, timezone

from langchain_nvidia_ai_endpoints import ChatNVIDIA

from aura_intake.core.config import get_settings

DEFAULT_MODEL = "meta/llama-3.3-70b-instruct"

INTAKE_SYSTEM_PROMPT = """You are Aura, the AI intake specialist for Aura Studio, a premium design agency.
Your goal is to have a professional, concise, and elegant conversation with potential clients to collect project leads.
Ask questions one by one to gather: Name, Project Description, Budget Range, and Timeline. Do not overwhelm the user.
Once you have these details, call the 'submitProjectLead' tool to save the lead.
If the tool reports a failure, tell the user plainly and ask for whatever is missing.
After the tool succeeds, confirm to the user that their request is logged and a human will follow up."""

GREETING = (
    "Hello. I'm Aura, the studio's intake agent. I can help you start a new project. "
    "To begin, may I have your name?"
)

APOLOGY = "I'm having trouble connecting to the studio server. Please try again."


def get_system_prompt_with_date() -> str:
    """System prompt plus today's date so the agent can reason about timelines."""
    now = datetime.now(timezone.utc)
    return f"{INTAKE_SYSTEM_PROMPT}\n\nCurrent date: {now.strftime('%A, %B %d, %Y')}."


def build_chat_model():
    """Chat model for one session. Raises if the NVIDIA endpoint is not configured."""
    settings = get_settings()
    if not settings.nvidia_api_key:
        raise RuntimeError("NVIDIA_API_KEY is not set")
    model_name = (settings.nvidia_model or "").strip() or DEFAULT_MODEL
    return ChatNVIDIA(
        model=model_name,
        nvidia_api_key=settings.nvidia_api_key,
        temperature=settings.chat_temperature,
        top_p=0.7,
        max_completion_tokens=settings.chat_max_tokens,
    )
