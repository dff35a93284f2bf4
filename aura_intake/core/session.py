"""
Chat session: one live conversation between a visitor and the intake agent.

A send runs: user turn → model stream (text deltas and grounding go straight into the open
timeline message; tool-call fragments are buffered) → after the stream is drained, every
tool call is dispatched (validate lead → Supabase) → tool results go back to the model →
the follow-up stream fills a new timeline message. This repeats while the model keeps
calling tools.

Any exception from a stream finalizes the open message and drops the unfinished round from
the model history. Tool rounds that already completed stay, so a stored lead is not
submitted twice. One apology message is appended and the session is free for the next send.
"""
import asyncio
import json
import logging
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable, Iterable, Optional

from langchain_core.messages import (
    AIMessage,
    AIMessageChunk,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.messages.tool import tool_call

from aura_intake.core.agent import APOLOGY, GREETING, build_chat_model, get_system_prompt_with_date
from aura_intake.core.events import (
    ChatEvent,
    GroundingReference,
    GroundingUpdate,
    StreamError,
    TextDelta,
    ToolCall,
    ToolCallBatch,
)
from aura_intake.core.supabase_client import LeadStore
from aura_intake.core.timeline import Message, MessageTimeline
from aura_intake.core.validation import validate_lead
from aura_tools import LEAD_TOOLS, SubmitProjectLead, ToolDeclaration, parse_tool_call

logger = logging.getLogger(__name__)

LEAD_SAVED = "Lead successfully saved to Aura Studio database."
LEAD_NOT_SAVED = "Lead could not be saved"


class ChatSessionError(Exception):
    """A send was refused before any stream started."""


class SessionNotReadyError(ChatSessionError):
    pass


class SessionBusyError(ChatSessionError):
    pass


class EmptyMessageError(ChatSessionError):
    pass


def _chunk_text(chunk: Any) -> str:
    """Text carried by one chunk; content is a string or a list of content blocks depending on provider."""
    content = chunk.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text") or "")
    return "".join(parts)


# Gemini grounding chunk key -> reference kind
_GROUNDING_SOURCES = (("web", "web"), ("maps", "location"))


def grounding_references(metadata: Optional[dict]) -> list[GroundingReference]:
    """Web and map citations from Gemini-style grounding metadata (snake_case or camelCase keys)."""
    if not metadata:
        return []
    grounding = metadata.get("grounding_metadata") or metadata.get("groundingMetadata")
    if not isinstance(grounding, dict):
        return []
    chunks = grounding.get("grounding_chunks") or grounding.get("groundingChunks") or []
    refs = []
    for item in chunks:
        if not isinstance(item, dict):
            continue
        for key, kind in _GROUNDING_SOURCES:
            source = item.get(key)
            if isinstance(source, dict) and source.get("uri"):
                refs.append(GroundingReference(kind=kind, title=source.get("title") or source["uri"], uri=source["uri"]))
    return refs


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _collect_tool_calls(aggregate: Optional[AIMessageChunk]) -> list[ToolCall]:
    """Tool calls from the merged fragments of a finished stream. Unparseable arguments become {}."""
    if aggregate is None:
        return []
    calls = [
        ToolCall(id=tc.get("id") or _new_call_id(), name=tc["name"], arguments=dict(tc.get("args") or {}))
        for tc in aggregate.tool_calls
    ]
    for bad in aggregate.invalid_tool_calls:
        logger.warning("Tool call %r has unparseable arguments: %s", bad.get("name"), bad.get("error"))
        calls.append(ToolCall(id=bad.get("id") or _new_call_id(), name=bad.get("name") or "", arguments={}))
    return calls


class SendReply:
    """Event stream of one send.

    Closing or dropping it before the first read frees the session; a generator that never
    started would not run its own cleanup.
    """

    def __init__(self, session: "ChatSession", events: AsyncIterator[ChatEvent]):
        self._session = session
        self._events = events
        self._started = False

    def __aiter__(self) -> "SendReply":
        return self

    async def __anext__(self) -> ChatEvent:
        self._started = True
        return await self._events.__anext__()

    async def aclose(self) -> None:
        if not self._started:
            self._started = True
            self._session._release()
        await self._events.aclose()

    def __del__(self):
        if not self._started:
            self._session._release()


class ChatSession:
    """Owns the model handle, turn history and timeline of one chat. One send at a time."""

    def __init__(
        self,
        store: Optional[LeadStore] = None,
        model_factory: Callable[[], Any] = build_chat_model,
        greeting: Optional[str] = GREETING,
    ):
        self._store = store or LeadStore()
        self._model_factory = model_factory
        self._chat = None
        self._system_prompt = ""
        self._tools: list[ToolDeclaration] = []
        self._history: list[BaseMessage] = []
        self._busy = False
        self._lead_submitted = False
        self.timeline = MessageTimeline()
        if greeting:
            self.timeline.append(Message(role="assistant", text=greeting))

    @property
    def ready(self) -> bool:
        return self._chat is not None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def lead_submitted(self) -> bool:
        return self._lead_submitted

    @property
    def tools(self) -> list[ToolDeclaration]:
        return list(self._tools)

    @property
    def history(self) -> list[BaseMessage]:
        return list(self._history)

    def initialize(
        self,
        system_prompt: Optional[str] = None,
        tools: Optional[Iterable[ToolDeclaration]] = None,
    ) -> bool:
        """Build and bind the chat model. On failure the session stays not-ready; no retry."""
        if self._busy:
            raise SessionBusyError("Cannot reinitialize while a reply is streaming")
        declared = list(LEAD_TOOLS if tools is None else tools)
        try:
            model = self._model_factory()
            self._chat = model.bind_tools([t.to_openai() for t in declared]) if declared else model
        except Exception as e:
            logger.warning("Chat model unavailable: %s. Sends are refused until initialize succeeds.", e)
            self._chat = None
            return False
        self._system_prompt = system_prompt or get_system_prompt_with_date()
        self._tools = declared
        logger.info("Chat session ready with tools: %s", [t.name for t in declared])
        return True

    def check_can_send(self, text: str) -> None:
        if not text or not text.strip():
            raise EmptyMessageError("Message is empty")
        if self._chat is None:
            raise SessionNotReadyError("Chat model is not available")
        if self._busy:
            raise SessionBusyError("A reply is still streaming")

    def send(self, text: str) -> "SendReply":
        """Start a send and return its event stream. Refusals raise here, before anything streams.

        The session stays busy until the returned reply is exhausted, closed or dropped.
        """
        self.check_can_send(text)
        self._busy = True
        return SendReply(self, self._run(text.strip()))

    def _release(self) -> None:
        self._busy = False

    async def _run(self, text: str) -> AsyncIterator[ChatEvent]:
        # history up to here is kept on failure; moves forward after each completed tool round
        checkpoint = len(self._history)
        current: Optional[Message] = None
        settled = False
        try:
            self.timeline.append(Message(role="user", text=text))
            self._history.append(HumanMessage(content=text))
            while True:
                current = self.timeline.open("assistant")
                calls: list[ToolCall] = []
                async with aclosing(self._stream_turn(current, calls)) as stream:
                    async for event in stream:
                        yield event
                self.timeline.finalize(current.id)
                if not calls:
                    settled = True
                    break
                yield ToolCallBatch(message_id=current.id, calls=list(calls))
                results = [await self._dispatch(call) for call in calls]
                self._history.extend(results)
                checkpoint = len(self._history)
        except Exception:
            settled = True
            logger.exception("Chat stream failed")
            self._abort(current, checkpoint)
            apology = self.timeline.append(Message(role="assistant", text=APOLOGY))
            yield StreamError(message_id=apology.id, text=APOLOGY)
        finally:
            if not settled:
                # consumer closed the iterator mid-send
                self._abort(current, checkpoint)
            self._release()

    def _abort(self, current: Optional[Message], checkpoint: int) -> None:
        if current is not None:
            self.timeline.finalize(current.id)
        del self._history[checkpoint:]

    async def _stream_turn(self, message: Message, calls: list[ToolCall]) -> AsyncIterator[ChatEvent]:
        """Stream one model reply into `message`. Tool calls land in `calls` only once the stream is done."""
        aggregate: Optional[AIMessageChunk] = None
        text_parts: list[str] = []
        chunks = self._chat.astream([SystemMessage(content=self._system_prompt), *self._history])
        async with aclosing(chunks):
            async for chunk in chunks:
                delta = _chunk_text(chunk)
                if delta:
                    text_parts.append(delta)
                    self.timeline.update_streaming_text(message.id, delta)
                    yield TextDelta(message_id=message.id, text=delta)
                refs = grounding_references(chunk.response_metadata)
                if refs:
                    self.timeline.attach_grounding(message.id, refs)
                    yield GroundingUpdate(message_id=message.id, references=refs)
                if chunk.tool_call_chunks:
                    piece = AIMessageChunk(content="", tool_call_chunks=list(chunk.tool_call_chunks))
                    aggregate = piece if aggregate is None else aggregate + piece
        calls.extend(_collect_tool_calls(aggregate))
        self._history.append(
            AIMessage(
                content="".join(text_parts),
                tool_calls=[tool_call(name=c.name, args=c.arguments, id=c.id) for c in calls],
            )
        )

    async def _dispatch(self, call: ToolCall) -> ToolMessage:
        """Run one tool call and wrap its result for the model. Never raises for tool-level failures."""
        invocation = parse_tool_call(call)
        if isinstance(invocation, SubmitProjectLead):
            payload = await self._submit_lead(invocation)
        else:
            logger.warning("Model called unknown tool %r", invocation.name)
            payload = {"ok": False, "error": f"Unknown tool: {invocation.name}"}
        return ToolMessage(content=json.dumps(payload), tool_call_id=call.id, name=call.name)

    async def _submit_lead(self, invocation: SubmitProjectLead) -> dict:
        result = validate_lead(invocation.draft)
        if not result.ok:
            logger.info("Chat lead rejected: %s", result.reason)
            return {"ok": False, "error": result.reason}
        outcome = await asyncio.to_thread(self._store.persist_lead, result.draft.to_record())
        if not outcome.ok:
            logger.warning("Chat lead not stored (%s)", outcome.status.value)
            return {"ok": False, "error": LEAD_NOT_SAVED}
        self._lead_submitted = True
        logger.info("--- LEAD CAPTURED --- %s / %s", result.draft.name, result.draft.project_type)
        return {"ok": True, "result": LEAD_SAVED}
