from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Iterator
from uuid import uuid4

from app.state_machine import PROCESSING
from app.workflow import WorkflowController

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Workflow controllers keyed by session cookie, with idle expiry and a cap.

    An evicted session releases its preview. Sessions with an extraction in
    flight are never evicted; they become eligible once they settle.
    """

    def __init__(
        self,
        factory: Callable[[str], WorkflowController],
        *,
        ttl_seconds: float,
        max_sessions: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._ttl_seconds = ttl_seconds
        self._max_sessions = max_sessions
        self._clock = clock
        self._sessions: OrderedDict[str, WorkflowController] = OrderedDict()
        self._last_seen: dict[str, float] = {}

    def get(self, session_id: str | None) -> WorkflowController | None:
        """Return the live controller for ``session_id`` without creating one."""
        self.prune()
        if not session_id:
            return None
        controller = self._sessions.get(session_id)
        if controller is not None:
            self._touch(session_id)
        return controller

    def create(self) -> tuple[str, WorkflowController]:
        self.prune()
        session_id = uuid4().hex
        self._sessions[session_id] = self._factory(session_id)
        self._touch(session_id)
        self._enforce_cap(keep=session_id)
        return session_id, self._sessions[session_id]

    def prune(self) -> int:
        cutoff = self._clock() - self._ttl_seconds
        expired = [
            session_id
            for session_id, seen in self._last_seen.items()
            if seen < cutoff and self._sessions[session_id].status != PROCESSING
        ]
        for session_id in expired:
            self._evict(session_id, reason="expired")
        return len(expired)

    def _touch(self, session_id: str) -> None:
        self._last_seen[session_id] = self._clock()
        self._sessions.move_to_end(session_id)

    def _enforce_cap(self, keep: str) -> None:
        excess = len(self._sessions) - self._max_sessions
        if excess <= 0:
            return
        # Least recently used first.
        candidates = [
            session_id
            for session_id, controller in self._sessions.items()
            if session_id != keep and controller.status != PROCESSING
        ]
        for session_id in candidates[:excess]:
            self._evict(session_id, reason="capacity")

    def _evict(self, session_id: str, *, reason: str) -> None:
        controller = self._sessions.pop(session_id)
        self._last_seen.pop(session_id, None)
        controller.close()
        logger.info("Session evicted reason=%s", reason, extra={"session_id": session_id})

    def values(self) -> list[WorkflowController]:
        return list(self._sessions.values())

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._sessions))

    def __len__(self) -> int:
        return len(self._sessions)
