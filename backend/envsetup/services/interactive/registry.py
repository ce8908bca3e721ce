"""
Session registry.

Maps session ids to InteractiveSession objects and their channel. One
registry is created per app and handed to the orchestrator and the
WebSocket routes, so separate registries never share sessions. All writes
go through one lock.
"""

import asyncio
import logging
import uuid
from typing import Any, Optional

from envsetup.services.interactive.session import (
    InteractiveSession,
    RefreshHandler,
    SessionView,
)

logger = logging.getLogger(__name__)


class SessionRegistry:

    def __init__(self):
        self._sessions: dict[str, InteractiveSession] = {}
        self._pending_retries: set[str] = set()
        self._lock = asyncio.Lock()

    def get(self, session_id: str) -> Optional[InteractiveSession]:
        return self._sessions.get(session_id)

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def create(
        self,
        view: Optional[SessionView] = None,
        on_refresh: Optional[RefreshHandler] = None,
        on_retry: Optional[RefreshHandler] = None,
    ) -> InteractiveSession:
        session = InteractiveSession(
            session_id=uuid.uuid4().hex,
            view=view,
            on_refresh=on_refresh,
            on_retry=on_retry,
        )
        async with self._lock:
            self._sessions[session.session_id] = session
        logger.debug(f"Created session {session.session_id}")
        return session

    async def bind_channel(self, session_id: str, channel: Any) -> Optional[InteractiveSession]:
        """
        Attach a channel to a session.

        Returns:
            The session, or None when the id is unknown, the session is
            already resolved, or another channel is already bound
        """
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning(f"Channel for unknown session {session_id}")
                return None
            if session.channel is not None:
                logger.warning(f"Session {session_id} already has a channel, rejecting")
                return None
            if session.resolved:
                logger.warning(f"Session {session_id} already resolved, rejecting channel")
                return None
            session.channel = channel
            return session

    async def release_channel(self, session_id: str, channel: Any) -> None:
        """Detach a channel; an unresolved session is cancelled."""
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.channel is not channel:
                return
            session.channel_lost()

    async def remove(self, session_id: str) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)
            self._pending_retries.discard(session_id)

    async def request_retry(self, session_id: str) -> None:
        async with self._lock:
            self._pending_retries.add(session_id)
        logger.debug(f"Retry requested for session {session_id}")

    async def take_retry(self, session_id: Optional[str]) -> bool:
        """Consume a pending retry for the session. True at most once per request."""
        if session_id is None:
            return False
        async with self._lock:
            if session_id in self._pending_retries:
                self._pending_retries.discard(session_id)
                return True
            return False
