"""
Short-lived dialogue state per phone number.

Entries expire after a period of inactivity. Expiry is checked lazily on every
read and can also be swept; an expired entry is never returned. Messages from
one phone number are serialized through ``ConversationStore.session``, messages
from different numbers never share a lock.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel

from birthlink.logging import mask_phone
from birthlink.models import Language, utcnow

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]


class ConversationMarker(StrEnum):
    IDLE = "IDLE"
    AWAITING_ETA = "AWAITING_ETA"


class ConversationState(BaseModel):
    phone: str
    last_activity: datetime
    marker: ConversationMarker = ConversationMarker.IDLE
    case_id: str | None = None
    language: Language | None = None
    turn_count: int = 0

    @property
    def awaiting_eta(self) -> bool:
        return self.marker == ConversationMarker.AWAITING_ETA and self.case_id is not None


class ConversationStore:
    def __init__(self, timeout: timedelta, now_fn: NowFn = utcnow) -> None:
        self.timeout = timeout
        self.now_fn = now_fn
        self._states: dict[str, ConversationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    def lock_for(self, phone: str) -> asyncio.Lock:
        # lookup and insert happen without an await in between
        lock = self._locks.get(phone)
        if lock is None:
            lock = self._locks[phone] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def session(self, phone: str) -> AsyncIterator[None]:
        """Hold the per-phone lock for the duration of one inbound message."""
        lock = self.lock_for(phone)
        # holders and waiters both count; sweep keeps any lock with users
        self._lock_users[phone] = self._lock_users.get(phone, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[phone] - 1
            if users:
                self._lock_users[phone] = users
            else:
                del self._lock_users[phone]

    def _expired(self, state: ConversationState, now: datetime) -> bool:
        return now - state.last_activity > self.timeout

    def get(self, phone: str) -> ConversationState | None:
        state = self._states.get(phone)
        if state is None:
            return None
        if self._expired(state, self.now_fn()):
            logger.debug(f"Conversation for {mask_phone(phone)} expired")
            self._states.pop(phone, None)
            return None
        return state

    def touch(self, phone: str, language: Language | None = None) -> ConversationState:
        """Record activity from ``phone``, starting a fresh conversation if needed."""
        now = self.now_fn()
        state = self.get(phone)
        if state is None:
            state = ConversationState(phone=phone, last_activity=now)
            self._states[phone] = state
        state.last_activity = now
        state.turn_count += 1
        if language is not None:
            state.language = language
        return state

    def mark_awaiting_eta(self, phone: str, case_id: str) -> ConversationState:
        now = self.now_fn()
        state = self.get(phone)
        if state is None:
            state = ConversationState(phone=phone, last_activity=now)
            self._states[phone] = state
        state.marker = ConversationMarker.AWAITING_ETA
        state.case_id = case_id
        state.last_activity = now
        return state

    def reset(self, phone: str) -> None:
        state = self._states.get(phone)
        if state is not None:
            state.marker = ConversationMarker.IDLE
            state.case_id = None

    def clear_case(self, case_id: str) -> None:
        """Stop waiting for ETA replies on a case that no longer needs them."""
        for state in list(self._states.values()):
            if state.case_id == case_id:
                state.marker = ConversationMarker.IDLE
                state.case_id = None

    def sweep(self) -> int:
        now = self.now_fn()
        expired = [p for p, s in list(self._states.items()) if self._expired(s, now)]
        for phone in expired:
            self._states.pop(phone, None)
        for phone in list(self._locks):
            if phone not in self._lock_users:
                del self._locks[phone]
        if expired:
            logger.info(f"Swept {len(expired)} expired conversation(s)")
        return len(expired)

    def __len__(self) -> int:
        return len(self._states)
