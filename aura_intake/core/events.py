"""Events yielded by a chat send, one tagged variant per kind."""
from dataclasses import asdict, dataclass, field
from typing import ClassVar, Literal, Union


@dataclass(frozen=True)
class GroundingReference:
    """A citation the model attached to its reply (web page or map location)."""

    kind: Literal["web", "location"]
    title: str
    uri: str


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict


@dataclass(frozen=True)
class TextDelta:
    type: ClassVar[str] = "text_delta"

    message_id: str
    text: str


@dataclass(frozen=True)
class GroundingUpdate:
    type: ClassVar[str] = "grounding_update"

    message_id: str
    references: list[GroundingReference] = field(default_factory=list)


@dataclass(frozen=True)
class ToolCallBatch:
    """Every invocation from one model stream, emitted only after that stream is drained."""

    type: ClassVar[str] = "tool_call_batch"

    message_id: str
    calls: list[ToolCall] = field(default_factory=list)


@dataclass(frozen=True)
class StreamError:
    """The stream failed; message_id is the apology appended to the timeline."""

    type: ClassVar[str] = "stream_error"

    message_id: str
    text: str


ChatEvent = Union[TextDelta, GroundingUpdate, ToolCallBatch, StreamError]


def event_to_dict(event: ChatEvent) -> dict:
    return {"type": event.type, **asdict(event)}
