"""Per-chat wizard sessions.

A session only lives in memory. Every chat id owns an ``asyncio.Lock``; the
wizard holds it for the whole step transition so duplicate taps on the same
chat are handled one after the other. Sessions idle for longer than the TTL
are dropped on access and by the periodic sweep.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import asyncio
import logging
import time

from participium.domain import GeoPoint, ReportCategory

from .constants import WizardStep

logger = logging.getLogger("telegram_bot.sessions")


@dataclass
class ReportDraft:
    location: Optional[GeoPoint] = None
    address: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[ReportCategory] = None
    photos: List[bytes] = field(default_factory=list)
    is_anonymous: bool = False


@dataclass
class ConversationSession:
    chat_id: int
    user_id: int
    step: WizardStep = WizardStep.WAITING_LOCATION
    draft: ReportDraft = field(default_factory=ReportDraft)
    updated_at: float = 0.0


class SessionStore(ABC):
    @abstractmethod
    def lock(self, chat_id: int) -> asyncio.Lock:
        """Return the lock serializing updates for `chat_id`."""

    @abstractmethod
    async def get(self, chat_id: int) -> Optional[ConversationSession]:
        ...

    @abstractmethod
    async def save(self, session: ConversationSession) -> None:
        ...

    @abstractmethod
    async def delete(self, chat_id: int) -> None:
        ...

    @abstractmethod
    async def sweep_expired(self) -> int:
        """Remove idle sessions and return how many were removed."""


class InMemorySessionStore(SessionStore):
    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds is None:
            from participium.config import get_settings

            ttl_seconds = get_settings().session_ttl_seconds
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[int, ConversationSession] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def lock(self, chat_id: int) -> asyncio.Lock:
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        return lock

    def _is_expired(self, session: ConversationSession) -> bool:
        return self._clock() - session.updated_at > self.ttl_seconds

    async def get(self, chat_id: int) -> Optional[ConversationSession]:
        session = self._sessions.get(chat_id)
        if session is None:
            return None
        if self._is_expired(session):
            logger.info("Session for chat %s expired at step %s", chat_id, session.step.value)
            del self._sessions[chat_id]
            return None
        return session

    async def save(self, session: ConversationSession) -> None:
        session.updated_at = self._clock()
        self._sessions[session.chat_id] = session

    async def delete(self, chat_id: int) -> None:
        self._sessions.pop(chat_id, None)

    @staticmethod
    def _in_use(lock: asyncio.Lock) -> bool:
        # A released lock stays claimed until the woken waiter runs.
        return lock.locked() or bool(getattr(lock, "_waiters", None))

    async def sweep_expired(self) -> int:
        removed = 0
        for chat_id, session in list(self._sessions.items()):
            # A chat in the middle of a step is left for the next sweep.
            if self._is_expired(session) and not self._in_use(self.lock(chat_id)):
                del self._sessions[chat_id]
                removed += 1
        for chat_id, lock in list(self._locks.items()):
            if chat_id not in self._sessions and not self._in_use(lock):
                del self._locks[chat_id]
        if removed:
            logger.info("Swept %s expired wizard session(s)", removed)
        return removed


__all__ = [
    "ReportDraft",
    "ConversationSession",
    "SessionStore",
    "InMemorySessionStore",
]
