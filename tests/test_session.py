"""Tests for the chat session: streaming, tool dispatch, lead capture and error recovery."""
import gc
import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from aura_intake.core.agent import APOLOGY, GREETING
from aura_intake.core.events import (
    GroundingReference,
    GroundingUpdate,
    StreamError,
    TextDelta,
    ToolCallBatch,
)
from aura_intake.core.session import (
    ChatSession,
    EmptyMessageError,
    SessionBusyError,
    SessionNotReadyError,
    grounding_references,
)
from aura_intake.core.supabase_client import LeadStore
from conftest import FakeChatModel, call, drain, grounded, text

JANE = {"name": "Jane", "projectType": "Web App", "budget": "10k-20k", "timeline": "6 weeks"}


class TestInitialize:
    def test_binds_lead_tool(self, make_session):
        session, model = make_session()

        assert session.ready
        assert [t["function"]["name"] for t in model.bound_tools] == ["submitProjectLead"]
        assert [t.name for t in session.tools] == ["submitProjectLead"]

    def test_timeline_starts_with_greeting(self, make_session):
        session, _ = make_session()

        [greeting] = session.timeline.snapshot()
        assert greeting.role == "assistant"
        assert greeting.text == GREETING
        assert not greeting.streaming

    def test_model_failure_leaves_session_not_ready(self, store):
        def unreachable():
            raise RuntimeError("NVIDIA_API_KEY is not set")

        session = ChatSession(store=store, model_factory=unreachable)

        assert session.initialize() is False
        assert not session.ready
        with pytest.raises(SessionNotReadyError):
            session.send("hello")

    @pytest.mark.asyncio
    async def test_reinitialize_after_failure(self, store):
        model = FakeChatModel([text("Welcome back.")])
        outcomes = [RuntimeError("down"), model]

        def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        session = ChatSession(store=store, model_factory=flaky)
        assert not session.initialize()
        assert session.initialize()

        events = await drain(session.send("hi"))
        assert [e.text for e in events] == ["Welcome back."]


class TestSendGuards:
    def test_rejects_blank_message(self, make_session):
        session, _ = make_session()

        with pytest.raises(EmptyMessageError):
            session.send("   ")
        assert not session.busy

    @pytest.mark.asyncio
    async def test_rejects_second_send_while_busy(self, make_session):
        session, model = make_session([text("One moment.")])

        events = session.send("first")
        with pytest.raises(SessionBusyError):
            session.send("second")
        await drain(events)

        assert not session.busy
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_reinitialize_while_busy_is_refused(self, make_session):
        session, _ = make_session([text("ok")])

        events = session.send("hi")
        with pytest.raises(SessionBusyError):
            session.initialize()
        await drain(events)


class TestStreaming:
    @pytest.mark.asyncio
    async def test_text_deltas_accumulate_into_one_message(self, make_session):
        session, model = make_session([text("Nice to "), text("meet you.")])

        events = await drain(session.send("  I'm Jane  "))

        assert all(isinstance(e, TextDelta) for e in events)
        assert "".join(e.text for e in events) == "Nice to meet you."
        _, user, reply = session.timeline.snapshot()
        assert (user.role, user.text) == ("user", "I'm Jane")
        assert (reply.role, reply.text, reply.streaming) == ("assistant", "Nice to meet you.", False)
        assert {e.message_id for e in events} == {reply.id}

    @pytest.mark.asyncio
    async def test_history_and_system_prompt(self, make_session):
        session, model = make_session([text("Hello Jane.")], [text("Noted.")])

        await drain(session.send("I'm Jane"))
        await drain(session.send("A website"))

        first, second = model.calls
        assert isinstance(first[0], SystemMessage)
        assert first[0].content == "You are a test agent."
        assert [type(m) for m in second[1:]] == [HumanMessage, AIMessage, HumanMessage]
        assert second[2].content == "Hello Jane."
        assert len(session.history) == 4

    @pytest.mark.asyncio
    async def test_at_most_one_streaming_message(self, make_session):
        session, _ = make_session(
            [text("Saving "), text("now."), call("submitProjectLead", JANE)],
            [text("All "), text("set.")],
        )

        async for _ in session.send("That's everything"):
            assert sum(m.streaming for m in session.timeline.snapshot()) <= 1
        assert not any(m.streaming for m in session.timeline.snapshot())

    @pytest.mark.asyncio
    async def test_grounding_is_additive_and_ordered(self, make_session):
        session, _ = make_session(
            [
                text("We have shipped "),
                grounded("Case study", "https://example.com/case"),
                text("apps in Lisbon."),
                grounded("Lisbon office", "https://maps.example.com/lisbon", source="maps"),
            ]
        )

        events = await drain(session.send("Where are you based?"))

        updates = [e for e in events if isinstance(e, GroundingUpdate)]
        assert len(updates) == 2
        reply = session.timeline.snapshot()[-1]
        assert reply.grounding == [
            GroundingReference(kind="web", title="Case study", uri="https://example.com/case"),
            GroundingReference(kind="location", title="Lisbon office", uri="https://maps.example.com/lisbon"),
        ]

    @pytest.mark.asyncio
    async def test_content_blocks_are_read_as_text(self, make_session):
        from langchain_core.messages import AIMessageChunk

        session, _ = make_session([AIMessageChunk(content=[{"type": "text", "text": "Block text"}])])

        events = await drain(session.send("hi"))

        assert [e.text for e in events] == ["Block text"]


class TestLeadCapture:
    @pytest.mark.asyncio
    async def test_valid_lead_is_stored_once_and_conversation_continues(self, make_session, supabase):
        session, model = make_session(
            [text("Let me save that."), call("submitProjectLead", {**JANE, "name": "  Jane  "})],
            [text("Your request is logged.")],
        )

        events = await drain(session.send("6 weeks"))

        assert supabase.inserted == [
            (
                "leads",
                {
                    "name": "Jane",
                    "project_type": "Web App",
                    "budget": "10k-20k",
                    "timeline": "6 weeks",
                    "source": "chat",
                },
            )
        ]
        assert session.lead_submitted
        _, _, thinking, follow_up = session.timeline.snapshot()
        assert thinking.text == "Let me save that."
        assert follow_up.text == "Your request is logged."
        assert not thinking.streaming and not follow_up.streaming

        batch = [e for e in events if isinstance(e, ToolCallBatch)]
        assert len(batch) == 1
        assert batch[0].message_id == thinking.id
        assert batch[0].calls[0].name == "submitProjectLead"

    @pytest.mark.asyncio
    async def test_tool_batch_comes_after_every_delta_of_its_stream(self, make_session):
        session, _ = make_session(
            [text("Saving"), call("submitProjectLead", JANE), text(" your details.")],
            [text("Done.")],
        )

        events = await drain(session.send("go ahead"))

        kinds = [(type(e).__name__, getattr(e, "text", None)) for e in events]
        assert kinds == [
            ("TextDelta", "Saving"),
            ("TextDelta", " your details."),
            ("ToolCallBatch", None),
            ("TextDelta", "Done."),
        ]

    @pytest.mark.asyncio
    async def test_tool_result_is_sent_back_to_model(self, make_session):
        session, model = make_session(
            [call("submitProjectLead", JANE, call_id="call_42")],
            [text("Thanks!")],
        )

        await drain(session.send("that's all"))

        follow_up_messages = model.calls[1]
        assistant, tool_result = follow_up_messages[-2:]
        assert isinstance(assistant, AIMessage)
        assert assistant.tool_calls[0]["id"] == "call_42"
        assert isinstance(tool_result, ToolMessage)
        assert tool_result.tool_call_id == "call_42"
        assert json.loads(tool_result.content)["ok"] is True

    @pytest.mark.asyncio
    async def test_fragmented_tool_call_is_merged(self, make_session, supabase):
        from langchain_core.messages import AIMessageChunk
        from langchain_core.messages.tool import tool_call_chunk

        args = json.dumps({"name": "Jane", "projectType": "Branding"})
        first = AIMessageChunk(
            content="",
            tool_call_chunks=[tool_call_chunk(name="submitProjectLead", args=args[:10], id="call_7", index=0)],
        )
        rest = AIMessageChunk(
            content="",
            tool_call_chunks=[tool_call_chunk(name=None, args=args[10:], id=None, index=0)],
        )
        session, _ = make_session([first, rest], [text("Saved.")])

        await drain(session.send("ok"))

        assert supabase.inserted[0][1]["project_type"] == "Branding"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,project_type", [("", "Web"), ("Jane", "   "), ("  ", "  ")])
    async def test_invalid_lead_is_never_stored(self, make_session, supabase, name, project_type):
        session, model = make_session(
            [call("submitProjectLead", {"name": name, "projectType": project_type})],
            [text("Could you tell me your name and project?")],
        )

        await drain(session.send("save it"))

        assert supabase.inserted == []
        assert not session.lead_submitted
        payload = json.loads(model.calls[1][-1].content)
        assert payload == {"ok": False, "error": "Missing required fields"}

    @pytest.mark.asyncio
    async def test_store_failure_is_reported_to_model(self):
        model = FakeChatModel(
            [call("submitProjectLead", JANE)],
            [text("Sorry, saving failed.")],
        )
        session = ChatSession(store=LeadStore(client_factory=lambda: None), model_factory=lambda: model)
        session.initialize()

        events = await drain(session.send("go"))

        assert not session.lead_submitted
        assert not any(isinstance(e, StreamError) for e in events)
        payload = json.loads(model.calls[1][-1].content)
        assert payload == {"ok": False, "error": "Lead could not be saved"}

    @pytest.mark.asyncio
    async def test_unknown_tool_gets_synthetic_result(self, make_session, supabase):
        session, model = make_session(
            [call("bookMeeting", {"when": "tomorrow"})],
            [text("I can't book meetings, but I can take your details.")],
        )

        events = await drain(session.send("book a call"))

        assert not any(isinstance(e, StreamError) for e in events)
        assert supabase.inserted == []
        payload = json.loads(model.calls[1][-1].content)
        assert payload == {"ok": False, "error": "Unknown tool: bookMeeting"}

    @pytest.mark.asyncio
    async def test_follow_up_tool_calls_are_dispatched_too(self, make_session, supabase):
        session, model = make_session(
            [call("submitProjectLead", {"name": "Jane"})],
            [call("submitProjectLead", JANE, call_id="call_2")],
            [text("Saved on the second try.")],
        )

        events = await drain(session.send("go"))

        assert len([e for e in events if isinstance(e, ToolCallBatch)]) == 2
        assert len(supabase.inserted) == 1
        assert len(model.calls) == 3
        assert session.timeline.snapshot()[-1].text == "Saved on the second try."


class TestStreamErrors:
    @pytest.mark.asyncio
    async def test_error_appends_one_apology_and_releases_lock(self, make_session):
        session, model = make_session(
            [text("Half a "), RuntimeError("connection reset")],
            [text("Back online.")],
        )

        events = await drain(session.send("hello"))

        assert isinstance(events[-1], StreamError)
        assert events[-1].text == APOLOGY
        _, _, partial, apology = session.timeline.snapshot()
        assert (partial.text, partial.streaming) == ("Half a ", False)
        assert (apology.role, apology.text, apology.streaming) == ("assistant", APOLOGY, False)
        assert apology.id == events[-1].message_id
        assert not session.busy
        assert session.history == []

        await drain(session.send("hello again"))
        assert session.timeline.snapshot()[-1].text == "Back online."

    @pytest.mark.asyncio
    async def test_error_before_tool_dispatch_stores_nothing(self, make_session, supabase):
        session, _ = make_session([call("submitProjectLead", JANE), ConnectionError("dropped")])

        events = await drain(session.send("save"))

        assert supabase.inserted == []
        assert not any(isinstance(e, ToolCallBatch) for e in events)
        assert isinstance(events[-1], StreamError)

    @pytest.mark.asyncio
    async def test_error_in_follow_up_stream(self, make_session, supabase):
        session, model = make_session(
            [call("submitProjectLead", JANE)],
            [text("Your"), TimeoutError("stalled")],
            [text("You're already on our list.")],
        )

        events = await drain(session.send("save"))

        assert isinstance(events[-1], StreamError)
        assert len(supabase.inserted) == 1
        apologies = [m for m in session.timeline.snapshot() if m.text == APOLOGY]
        assert len(apologies) == 1
        assert not session.busy
        human, assistant, tool_result = session.history
        assert isinstance(human, HumanMessage)
        assert assistant.tool_calls[0]["id"] == "call_1"
        assert json.loads(tool_result.content)["ok"] is True

        events = await drain(session.send("did that go through?"))

        assert not any(isinstance(e, StreamError) for e in events)
        assert len(supabase.inserted) == 1
        retry = model.calls[2]
        assert isinstance(retry[-2], ToolMessage)
        assert retry[-1].content == "did that go through?"

    @pytest.mark.asyncio
    async def test_malformed_chunk_is_a_stream_error(self, make_session):
        session, _ = make_session([text("Hi"), object()])

        events = await drain(session.send("hello"))

        assert isinstance(events[-1], StreamError)
        assert not session.busy

    @pytest.mark.asyncio
    async def test_closing_iterator_early_releases_lock(self, make_session):
        session, model = make_session([text("one"), text("two")], [text("fresh")])

        events = session.send("hi")
        await events.__anext__()
        await events.aclose()

        assert not session.busy
        assert not any(m.streaming for m in session.timeline.snapshot())
        assert session.history == []
        assert model.closed == 1

    @pytest.mark.asyncio
    async def test_closing_at_tool_batch_drops_unanswered_call(self, make_session, supabase):
        session, _ = make_session([call("submitProjectLead", JANE)])

        events = session.send("save")
        assert isinstance(await events.__anext__(), ToolCallBatch)
        await events.aclose()

        assert not session.busy
        assert supabase.inserted == []
        assert session.history == []

    @pytest.mark.asyncio
    async def test_closing_unread_reply_releases_lock(self, make_session):
        session, model = make_session([text("never read")], [text("fresh")])

        await session.send("hi").aclose()

        assert not session.busy
        events = await drain(session.send("hi again"))
        assert [e.text for e in events] == ["fresh"]
        assert len(model.calls) == 1

    @pytest.mark.asyncio
    async def test_dropped_unread_reply_releases_lock(self, make_session):
        session, _ = make_session([text("never read")], [text("fresh")])

        session.send("hi")
        gc.collect()

        assert not session.busy
        events = await drain(session.send("hi again"))
        assert [e.text for e in events] == ["fresh"]


class TestGroundingReferences:
    def test_camel_case_metadata(self):
        metadata = {
            "groundingMetadata": {
                "groundingChunks": [
                    {"web": {"title": "Aura", "uri": "https://aura.example"}},
                    {"maps": {"uri": "https://maps.example/1"}},
                    {"retrievedContext": {"uri": "ignored"}},
                ]
            }
        }

        assert grounding_references(metadata) == [
            GroundingReference(kind="web", title="Aura", uri="https://aura.example"),
            GroundingReference(kind="location", title="https://maps.example/1", uri="https://maps.example/1"),
        ]

    def test_missing_metadata(self):
        assert grounding_references({}) == []
        assert grounding_references({"grounding_metadata": None}) == []
