"""Pytest configuration and shared fixtures."""
import json
from types import SimpleNamespace

import pytest
from langchain_core.messages import AIMessageChunk
from langchain_core.messages.tool import tool_call_chunk

from aura_intake.core.session import ChatSession
from aura_intake.core.supabase_client import LeadStore


class FakeChatModel:
    """Stand-in for a LangChain chat model. Each astream call plays the next script.

    A script is a list of chunks; an exception in the list is raised at that point of the stream.
    """

    def __init__(self, *scripts):
        self.scripts = list(scripts)
        self.bound_tools = None
        self.calls = []
        self.closed = 0

    def bind_tools(self, tools, **kwargs):
        self.bound_tools = tools
        return self

    async def astream(self, messages, **kwargs):
        self.calls.append(list(messages))
        script = self.scripts.pop(0)
        try:
            for item in script:
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed += 1


class FakeQuery:
    def __init__(self, client, table):
        self._client = client
        self._table = table
        self._row = None

    def insert(self, row):
        self._row = row
        return self

    def execute(self):
        if self._client.error is not None:
            raise self._client.error
        self._client.inserted.append((self._table, self._row))
        return SimpleNamespace(data=[self._row])


class FakeSupabaseClient:
    """Records inserts instead of talking to Supabase; set `error` to make execute() raise."""

    def __init__(self, error=None):
        self.error = error
        self.inserted = []

    def table(self, name):
        return FakeQuery(self, name)


def text(content):
    return AIMessageChunk(content=content)


def call(name, args, call_id="call_1", index=0):
    return AIMessageChunk(
        content="",
        tool_call_chunks=[tool_call_chunk(name=name, args=json.dumps(args), id=call_id, index=index)],
    )


def grounded(title, uri, source="web"):
    return AIMessageChunk(
        content="",
        response_metadata={"grounding_metadata": {"grounding_chunks": [{source: {"title": title, "uri": uri}}]}},
    )


@pytest.fixture
def supabase():
    return FakeSupabaseClient()


@pytest.fixture
def store(supabase):
    return LeadStore(client_factory=lambda: supabase)


@pytest.fixture
def make_session(store):
    """Build an initialized session whose model plays the given scripts."""

    def _make(*scripts):
        model = FakeChatModel(*scripts)
        session = ChatSession(store=store, model_factory=lambda: model)
        assert session.initialize(system_prompt="You are a test agent.")
        return session, model

    return _make


async def drain(events):
    return [event async for event in events]
