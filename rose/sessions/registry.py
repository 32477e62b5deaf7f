"""In-memory session registry with per-session locks and inactivity purge."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Callable, Sequence

from .models import ConversationSession, MessageTurn, utcnow
from .store import SessionStore

logger = logging.getLogger("rose.sessions")


class SessionRegistry:
    """Owns live sessions; snapshots are mirrored to an optional durable store.

    Turns for one session are serialised through :meth:`lock_for`. A session
    evicted from memory (purge or restart) is rebuilt from the store unless
    its snapshot is older than ``max_age_seconds``.
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        *,
        max_age_seconds: float = 24 * 3600.0,
        history_limit: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.max_age_seconds = max_age_seconds
        self._history_limit = history_limit
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._last_seen: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def get(self, session_id: str) -> ConversationSession | None:
        return self._sessions.get(session_id)

    def create_session(self, session_id: str, product_id: str | None = None) -> ConversationSession:
        session = ConversationSession(session_id=session_id, product_id=product_id)
        self._register(session)
        return session

    async def get_or_create(self, session_id: str, product_id: str | None = None) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = await self._recover(session_id)
            if session is not None:
                self._register(session)
        if session is None:
            session = self.create_session(session_id, product_id)
            logger.debug("Created session %s for product %s", session_id, product_id)
        self._last_seen[session_id] = self._clock()
        return session

    async def _recover(self, session_id: str) -> ConversationSession | None:
        if self.store is None:
            return None
        try:
            session = await asyncio.to_thread(self.store.load_session, session_id, self._history_limit)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to load session %s from store", session_id)
            return None
        if session is None:
            return None
        if utcnow() - session.last_activity > timedelta(seconds=self.max_age_seconds):
            logger.info("Ignoring expired snapshot for session %s", session_id)
            return None
        logger.info("Recovered session %s at step %s", session_id, session.step.value)
        return session

    def _register(self, session: ConversationSession) -> None:
        self._sessions[session.session_id] = session
        self._last_seen[session.session_id] = self._clock()

    async def dispose_session(self, session_id: str) -> bool:
        """Forget ``session_id`` and delete its snapshot.

        Callers hold :meth:`lock_for` so no turn of the session is in flight.
        """

        existed = self._sessions.pop(session_id, None) is not None
        self._last_seen.pop(session_id, None)
        if self.store is not None:
            await asyncio.to_thread(self.store.delete, session_id)
        return existed

    async def persist(self, session: ConversationSession, turns: Sequence[MessageTurn]) -> None:
        """Mirror a session to the durable store. Failures are logged, never raised."""

        store = self.store
        if store is None:
            return
        if self._sessions.get(session.session_id) is not session:
            logger.debug("Skipping persist for disposed session %s", session.session_id)
            return
        try:
            await asyncio.to_thread(_write, store, session, list(turns))
        except Exception:  # noqa: BLE001
            logger.exception("Failed to persist session %s", session.session_id)

    def purge_inactive(self) -> list[str]:
        """Drop in-memory sessions idle for longer than ``max_age_seconds``."""

        now = self._clock()
        purged: list[str] = []
        for session_id, seen in list(self._last_seen.items()):
            if now - seen <= self.max_age_seconds:
                continue
            lock = self._locks.get(session_id)
            if lock is not None and lock.locked():
                continue
            self._sessions.pop(session_id, None)
            self._last_seen.pop(session_id, None)
            self._locks.pop(session_id, None)
            purged.append(session_id)
        if purged:
            logger.info("Purged %d inactive sessions", len(purged))
        return purged

    async def run_sweeper(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.purge_inactive()


def _write(store: SessionStore, session: ConversationSession, turns: list[MessageTurn]) -> None:
    store.save_session(session)
    for turn in turns:
        store.append_turn(turn)
