"""
Session management

A query session groups the queries run on behalf of one investigation.
The controller opens one per investigation and ends it on cancel.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..models import new_id, utcnow

logger = logging.getLogger(__name__)


class SessionOptions(BaseModel):
    language: str = "en"
    default_mode: Literal["direct", "step", "raw", "template"] = "direct"
    show_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    allow_editing: bool = True
    max_regeneration_attempts: int = Field(default=3, ge=0)


class QueryHistoryEntry(BaseModel):
    query: str
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: float = 1.0
    action: Literal["generated", "edited", "regenerated", "executed"] = "executed"
    reason: Optional[str] = None


class QuerySession(BaseModel):
    session_id: str = Field(default_factory=new_id)
    options: SessionOptions = Field(default_factory=SessionOptions)
    created_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    detailed_history: list[QueryHistoryEntry] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def query_history(self) -> list[str]:
        return [entry.query for entry in self.detailed_history]

    def add_to_history(
        self,
        query: str,
        confidence: float = 1.0,
        action: str = "executed",
        reason: Optional[str] = None,
    ) -> None:
        self.detailed_history.append(
            QueryHistoryEntry(
                query=query, confidence=confidence, action=action, reason=reason
            )
        )


class SessionManager(ABC):
    """Interface for session lifecycle"""

    @abstractmethod
    async def create_session(self, options: SessionOptions) -> QuerySession:
        """Open a new session"""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[QuerySession]:
        """Return a session or None"""

    @abstractmethod
    async def end_session(self, session_id: str) -> None:
        """Close a session; unknown ids are ignored"""


class InMemorySessionManager(SessionManager):
    """Process-local session manager"""

    def __init__(self):
        self._sessions: dict[str, QuerySession] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, options: SessionOptions) -> QuerySession:
        session = QuerySession(options=options)
        async with self._lock:
            self._sessions[session.session_id] = session
        logger.debug(f"Created session {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[QuerySession]:
        return self._sessions.get(session_id)

    async def update_session_options(self, session_id: str, **changes) -> None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise KeyError(f"Session not found: {session_id}")
            session.options = session.options.model_copy(update=changes)

    async def end_session(self, session_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            logger.debug(f"Session {session_id} already ended")
            return
        session.ended_at = utcnow()
        logger.debug(f"Ended session {session_id}")

    def active_sessions(self) -> list[str]:
        return list(self._sessions.keys())
