"""Shared router dependencies: the Supabase lead store and the live chat sessions."""
import logging
import threading
import uuid
from collections import OrderedDict
from functools import lru_cache
from typing import Callable, Optional

from aura_intake.core.config import get_settings
from aura_intake.core.session import ChatSession
from aura_intake.core.supabase_client import LeadStore

logger = logging.getLogger(__name__)


class ChatSessionRegistry:
    """In-memory chat sessions keyed by id. Create on widget mount, drop on unmount.

    When full, the oldest idle session is evicted. Sessions with a reply still streaming are
    never evicted, so the registry may briefly hold more than `max_sessions`.
    """

    def __init__(self, session_factory: Callable[[], ChatSession], max_sessions: int = 500):
        self._session_factory = session_factory
        self._max_sessions = max(1, max_sessions)
        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self) -> tuple[str, ChatSession]:
        # model setup can be slow; only the dict update is under the lock
        session = self._session_factory()
        session.initialize()
        session_id = str(uuid.uuid4())
        with self._lock:
            self._sessions[session_id] = session
            self._evict(keep=session_id)
        return session_id, session

    def _evict(self, keep: str) -> None:
        excess = len(self._sessions) - self._max_sessions
        if excess <= 0:
            return
        idle = [sid for sid, s in self._sessions.items() if sid != keep and not s.busy][:excess]
        for session_id in idle:
            del self._sessions[session_id]
            logger.info("Chat session %s evicted (limit %d)", session_id, self._max_sessions)
        if len(idle) < excess:
            logger.warning("Chat session limit %d exceeded; %d sessions are streaming", self._max_sessions, excess - len(idle))

    def get(self, session_id: str) -> Optional[ChatSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def drop(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


@lru_cache(maxsize=1)
def get_lead_store() -> LeadStore:
    return LeadStore()


@lru_cache(maxsize=1)
def get_session_registry() -> ChatSessionRegistry:
    store = get_lead_store()
    return ChatSessionRegistry(lambda: ChatSession(store=store), get_settings().chat_max_sessions)
