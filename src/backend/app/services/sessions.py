from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fastapi import FastAPI, Request

from ..core.errors import SessionNotFoundError
from ..core.notify import Broadcaster
from ..schemas.transcripts import TranscriptEvent

logger = logging.getLogger(__name__)

SESSIONS_KEY = "session_manager"
WELCOME_TEXT = "Transcript Relay - Open the webview to see live transcripts!"


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SessionInfo:
    session_id: str
    user_id: str
    started_at: int = field(default_factory=now_ms)
    welcome: str = WELCOME_TEXT


class SessionManager:
    """Bridges platform sessions to the dashboards of the same user."""

    def __init__(self, broadcaster: Broadcaster):
        self.broadcaster = broadcaster
        self._sessions: Dict[str, SessionInfo] = {}
        self._lock = asyncio.Lock()

    async def start(self, session_id: str, user_id: str) -> SessionInfo:
        info = SessionInfo(session_id=session_id, user_id=user_id)
        async with self._lock:
            previous = self._sessions.get(session_id)
            self._sessions[session_id] = info
        if previous is not None and previous.user_id != user_id:
            logger.warning("Session %s reassigned from %s to %s", session_id, previous.user_id, user_id)
        logger.info("New session: %s for user %s", session_id, user_id)
        return info

    async def get(self, session_id: str) -> SessionInfo:
        async with self._lock:
            info = self._sessions.get(session_id)
        if info is None:
            raise SessionNotFoundError(session_id)
        return info

    async def sessions_for(self, user_id: str) -> List[SessionInfo]:
        async with self._lock:
            return [s for s in self._sessions.values() if s.user_id == user_id]

    async def transcription(self, session_id: str, text: str, is_final: bool) -> tuple[TranscriptEvent, int, Optional[str]]:
        """Relay one interim or final transcription.

        Returns the event, how many streams received it and, for final
        results, the text to echo on the wearer's display.
        """
        info = await self.get(session_id)
        event = TranscriptEvent(text=text, timestamp=now_ms(), is_final=is_final)
        delivered = await self.broadcaster.publish(info.user_id, event)
        display = f"You said: {text}" if is_final else None
        return event, delivered, display

    async def end(self, session_id: str) -> int:
        async with self._lock:
            info = self._sessions.pop(session_id, None)
        if info is None:
            raise SessionNotFoundError(session_id)
        logger.info("Session %s disconnected.", session_id)
        # Dashboards must not hang on a session that stopped producing events
        return await self.broadcaster.registry.close_all(info.user_id)

    async def clear(self) -> None:
        async with self._lock:
            self._sessions.clear()


async def init_sessions(app: FastAPI, broadcaster: Broadcaster) -> SessionManager:
    manager = SessionManager(broadcaster)
    app.state.__setattr__(SESSIONS_KEY, manager)
    return manager


async def close_sessions(app: FastAPI) -> None:
    manager: Optional[SessionManager] = getattr(app.state, SESSIONS_KEY, None)
    if manager is not None:
        try:
            await manager.clear()
        finally:
            delattr(app.state, SESSIONS_KEY)


def get_sessions(request: Request) -> SessionManager:
    manager: Optional[SessionManager] = getattr(request.app.state, SESSIONS_KEY, None)
    if manager is None:
        raise RuntimeError("Session manager not initialized")
    return manager
