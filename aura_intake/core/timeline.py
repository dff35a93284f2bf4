"""
Message timeline: the ordered, user-visible view of a chat (separate from the model's turn history).

Append-only. Only the single streaming message may change text; grounding references can be
added to any assistant message and are never removed.
"""
import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, Literal, Optional

from aura_intake.core.events import GroundingReference


class TimelineError(RuntimeError):
    """Raised on a mutation the timeline does not allow (second stream, write after finalize)."""


@dataclass
class Message:
    role: Literal["user", "assistant"]
    text: str = ""
    streaming: bool = False
    grounding: list[GroundingReference] = field(default_factory=list)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "text": self.text,
            "streaming": self.streaming,
            "grounding": [
                {"kind": r.kind, "title": r.title, "uri": r.uri} for r in self.grounding
            ],
        }


class MessageTimeline:
    def __init__(self, messages: Optional[Iterable[Message]] = None):
        self._messages: list[Message] = []
        self._index: dict[str, Message] = {}
        for message in messages or ():
            self.append(message)

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def streaming_message(self) -> Optional[Message]:
        for message in reversed(self._messages):
            if message.streaming:
                return message
        return None

    def append(self, message: Message) -> Message:
        if message.id in self._index:
            raise TimelineError(f"Duplicate message id {message.id}")
        if message.streaming and self.streaming_message is not None:
            raise TimelineError("Another message is still streaming")
        self._messages.append(message)
        self._index[message.id] = message
        return message

    def open(self, role: Literal["user", "assistant"] = "assistant") -> Message:
        """Append an empty streaming message and return it."""
        return self.append(Message(role=role, streaming=True))

    def get(self, message_id: str) -> Message:
        try:
            return self._index[message_id]
        except KeyError:
            raise KeyError(f"Unknown message id {message_id}") from None

    def update_streaming_text(self, message_id: str, delta: str) -> Message:
        message = self.get(message_id)
        if not message.streaming:
            raise TimelineError(f"Message {message_id} is final")
        message.text += delta
        return message

    def finalize(self, message_id: str) -> Message:
        message = self.get(message_id)
        message.streaming = False
        return message

    def attach_grounding(self, message_id: str, references: Iterable[GroundingReference]) -> Message:
        message = self.get(message_id)
        message.grounding.extend(references)
        return message

    def snapshot(self) -> list[Message]:
        """Copies in order, safe to hand to the rendering layer between chunks."""
        return [replace(m, grounding=list(m.grounding)) for m in self._messages]
