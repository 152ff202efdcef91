"""
SafetyAI - Chat Session Store

In-memory registry of chat sessions keyed by session id.
Guarded by an asyncio lock and bounded by both a TTL and an LRU cap.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from safetyai.core.logging import mask_session_id
from safetyai.core.types import ChatSession, UserContext

logger = logging.getLogger(__name__)


class ChatSessionStore:
    """
    In-memory store for chat sessions.

    Every read and mutation goes through one asyncio lock, so concurrent
    chat calls on the same session id never lose history entries.

    Eviction:
        - Sessions idle longer than the TTL are dropped on access and by
          the background cleanup task.
        - When max_sessions is reached, the least recently active session
          is evicted to make room.

    Usage:
        store = ChatSessionStore(history_limit=10)
        await store.start()

        session = await store.get_or_create("abc", UserContext(role="Supervisor"))
        previous = await store.record_query("abc", "How do I report a spill?", context_turns=2)

        await store.stop()
    """

    def __init__(
        self,
        history_limit: int = 10,
        max_sessions: int = 1000,
        session_ttl_minutes: int = 60,
        cleanup_interval_seconds: int = 60,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Initialize the chat session store.

        Args:
            history_limit: Max queries/responses kept per session
            max_sessions: Max sessions kept before LRU eviction
            session_ttl_minutes: Idle time after which a session expires
            cleanup_interval_seconds: Background cleanup interval
            clock: Time source, injectable for tests
        """
        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._history_limit = history_limit
        self._max_sessions = max_sessions
        self._session_ttl = timedelta(minutes=session_ttl_minutes)
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._cleanup_task: Optional[asyncio.Task] = None
        self._started = False

    async def start(self) -> None:
        """Start background cleanup task."""
        if self._started:
            return

        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        self._started = True

        logger.info(
            "ChatSessionStore started: max=%d, ttl=%s, history_limit=%d",
            self._max_sessions,
            self._session_ttl,
            self._history_limit,
        )

    async def stop(self) -> None:
        """Stop background tasks and clear sessions."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        async with self._lock:
            count = len(self._sessions)
            self._sessions.clear()

        self._started = False
        logger.info("ChatSessionStore stopped: cleared %d sessions", count)

    async def get_or_create(
        self,
        session_id: str,
        user_context: Optional[UserContext] = None,
    ) -> ChatSession:
        """
        Return the live session for an id, creating it on first contact.

        Refreshes last activity and LRU position.
        """
        async with self._lock:
            return self._get_or_create_locked(session_id, user_context)

    async def record_query(
        self,
        session_id: str,
        query: str,
        user_context: Optional[UserContext] = None,
        context_turns: int = 0,
    ) -> List[str]:
        """
        Append a query to the session history, creating the session if needed.

        Returns up to `context_turns` queries that preceded this one, oldest
        first, read under the same lock acquisition as the append.
        """
        async with self._lock:
            session = self._get_or_create_locked(session_id, user_context)
            previous = session.recent_queries(context_turns)
            session.add_query(query)
            return previous

    async def record_response(self, session_id: str, response: str) -> ChatSession:
        """Append a response to the session history (creating the session if needed)."""
        async with self._lock:
            session = self._get_or_create_locked(session_id, None)
            session.add_response(response)
            return session

    def _get_or_create_locked(
        self,
        session_id: str,
        user_context: Optional[UserContext],
    ) -> ChatSession:
        now = self._clock()
        session = self._sessions.get(session_id)

        if session is not None and self._is_expired(session, now):
            logger.info("Chat session expired: session=%s", mask_session_id(session_id))
            del self._sessions[session_id]
            session = None

        if session is None:
            while len(self._sessions) >= self._max_sessions:
                evicted_id, _ = self._sessions.popitem(last=False)
                logger.info("Chat session evicted (LRU): session=%s", mask_session_id(evicted_id))

            session = ChatSession(
                session_id=session_id,
                history_limit=self._history_limit,
                user_id=user_context.user_id if user_context else None,
                user_role=user_context.role if user_context else None,
                started_at=now,
                last_activity=now,
            )
            self._sessions[session_id] = session
            logger.info("Chat session created: session=%s", mask_session_id(session_id))
        else:
            session.last_activity = now
            self._sessions.move_to_end(session_id)

        return session

    async def recent_queries(self, session_id: str, count: int) -> List[str]:
        """Return up to `count` most recent queries for a session, oldest first."""
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.recent_queries(count) if session else []

    async def snapshot(self, session_id: str) -> Optional[dict]:
        """Return a read-only dict view of a session, or None if unknown."""
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.to_dict() if session else None

    async def count(self) -> int:
        async with self._lock:
            return len(self._sessions)

    async def evict_expired(self) -> int:
        """Drop every session idle longer than the TTL; returns the count."""
        async with self._lock:
            now = self._clock()
            stale_ids = [
                sid for sid, session in self._sessions.items()
                if self._is_expired(session, now)
            ]
            for sid in stale_ids:
                del self._sessions[sid]
        return len(stale_ids)

    def _is_expired(self, session: ChatSession, now: datetime) -> bool:
        return now - session.last_activity > self._session_ttl

    async def _cleanup_loop(self) -> None:
        """Background task to evict stale sessions."""
        while True:
            try:
                await asyncio.sleep(self._cleanup_interval)
                removed = await self.evict_expired()
                if removed:
                    logger.info("Cleaned up %d stale chat sessions", removed)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in cleanup loop: %s", str(e))
