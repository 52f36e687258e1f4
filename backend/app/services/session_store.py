"""
In-memory workspaces, one per browser (keyed by the session cookie).

A workspace holds the current analysis, the chat session anchored to it and the visible
transcript. Starting a new analysis discards all three. Only one analysis request and one
chat reply may be outstanding per workspace at a time.
"""
import logging
import time
import uuid
from dataclasses import dataclass, field
from functools import lru_cache

from app.config import get_settings
from app.schemas.analysis import StockAnalysis
from app.schemas.chat import ChatMessage
from app.services.openai_service import ChatSession

logger = logging.getLogger(__name__)

# A reply still marked outstanding after this long was abandoned by its stream
REPLY_TIMEOUT = 300


class WorkspaceBusyError(Exception):
    pass


@dataclass
class Workspace:
    client_id: str
    analysis: StockAnalysis | None = None
    chat: ChatSession | None = None
    messages: list[ChatMessage] = field(default_factory=list)
    analyzing: bool = False
    chatting: bool = False
    chat_token: int = 0
    chat_started_at: float = 0.0
    touched_at: float = field(default_factory=time.time)

    def begin_analysis(self):
        if self.analyzing:
            raise WorkspaceBusyError("이미 분석이 진행 중입니다.")
        self.analyzing = True
        self.analysis = None
        self.chat = None
        self.messages = []
        # A reply to the discarded chat no longer holds the workspace
        self.chatting = False
        self.chat_token += 1

    def end_analysis(self):
        self.analyzing = False

    def begin_chat(self) -> int:
        """Mark a reply as outstanding and return the token that releases it."""
        if self.reply_outstanding:
            raise WorkspaceBusyError("이전 답변이 아직 생성 중입니다.")
        self.chatting = True
        self.chat_started_at = time.time()
        self.chat_token += 1
        return self.chat_token

    def end_chat(self, token: int):
        # A stale reply must not release a newer one
        if token == self.chat_token:
            self.chatting = False

    @property
    def reply_outstanding(self) -> bool:
        return self.chatting and time.time() - self.chat_started_at < REPLY_TIMEOUT

    @property
    def busy(self) -> bool:
        return self.analyzing or self.reply_outstanding


class SessionStore:
    def __init__(self, ttl: int = 3600, max_entries: int = 500):
        self.ttl = ttl
        self.max_entries = max_entries
        self._workspaces: dict[str, Workspace] = {}

    def __len__(self) -> int:
        return len(self._workspaces)

    def get(self, client_id: str | None) -> Workspace | None:
        if not client_id:
            return None
        workspace = self._workspaces.get(client_id)
        if workspace is None:
            return None
        if not workspace.busy and time.time() - workspace.touched_at > self.ttl:
            del self._workspaces[client_id]
            return None
        workspace.touched_at = time.time()
        return workspace

    def get_or_create(self, client_id: str | None) -> Workspace:
        workspace = self.get(client_id)
        if workspace is not None:
            return workspace

        workspace = Workspace(client_id=uuid.uuid4().hex)
        self._workspaces[workspace.client_id] = workspace
        self._prune()
        return workspace

    def _prune(self):
        # Prune idle workspaces once the store grows past its bound
        if len(self._workspaces) <= self.max_entries:
            return
        cutoff = time.time() - self.ttl
        stale = [k for k, w in self._workspaces.items() if w.touched_at < cutoff and not w.busy]
        for k in stale:
            del self._workspaces[k]
        if stale:
            logger.info(f"Pruned {len(stale)} idle workspaces")


@lru_cache
def get_session_store() -> SessionStore:
    settings = get_settings()
    return SessionStore(ttl=settings.session_ttl, max_entries=settings.session_max_entries)
