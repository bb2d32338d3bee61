"""
Turn Scheduler — wall-clock timers that end each session's turn.

One timer handle per session, keyed by session id. Scheduling always
cancels the previous handle first, so a session never has two pending turn
ends. A fired timer runs the turn as a task; turns already in flight are
awaited on shutdown, never cancelled.

A failed scheduled turn is logged and not rescheduled; the session stays
``active`` and can be advanced manually or re-initialized.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime

from pydantic import BaseModel

from polsim.config import settings
from polsim.model.schema import SessionStatus, utcnow
from polsim.simulation.turns import TurnOrchestrator, TurnReport
from polsim.storage.base import SessionStore

logger = logging.getLogger(__name__)


class TurnStatus(BaseModel):
    session_id: str
    current_turn: int
    in_game_date: date
    status: SessionStatus
    auto_advance_enabled: bool
    turn_end_time: datetime
    seconds_remaining: float
    scheduled: bool


class TurnScheduler:
    """
    Keeps at most one pending turn-end timer per session.

    Usage:
        scheduler = TurnScheduler(orchestrator)
        await scheduler.initialize_all_sessions()
        ...
        await scheduler.shutdown()
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        store: SessionStore | None = None,
        turn_length_seconds: float | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.store = store or orchestrator.store
        self.turn_length_seconds = (
            settings.turn_length_seconds if turn_length_seconds is None else turn_length_seconds
        )
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def is_scheduled(self, session_id: str) -> bool:
        return session_id in self._handles

    # ── Timers ─────────────────────────────────────────────────

    def schedule_turn_end(self, session_id: str, delay: float) -> None:
        """Replace any pending timer for the session with one firing after ``delay`` seconds."""
        self.cancel(session_id)
        loop = asyncio.get_running_loop()
        self._handles[session_id] = loop.call_later(max(0.0, delay), self._fire, session_id)
        logger.debug("Turn end for session %s scheduled in %.1fs", session_id, delay)

    def cancel(self, session_id: str) -> bool:
        handle = self._handles.pop(session_id, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def _fire(self, session_id: str) -> None:
        self._handles.pop(session_id, None)
        task = asyncio.get_running_loop().create_task(self._run_scheduled(session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_scheduled(self, session_id: str) -> None:
        try:
            await self.advance_turn(session_id)
        except Exception:
            logger.exception("Scheduled turn end failed for session %s; not rescheduled", session_id)

    # ── Session control ────────────────────────────────────────

    async def initialize_session(self, session_id: str) -> float | None:
        """
        Schedule a session's turn end from its stored ``turn_end_time``.

        Returns:
            The delay in seconds, or None when auto-advance is off.
        """
        session = await self.store.get_session(session_id)
        if not session.auto_advance_enabled:
            self.cancel(session_id)
            return None
        delay = max(0.0, (session.turn_end_time - utcnow()).total_seconds())
        self.schedule_turn_end(session_id, delay)
        return delay

    async def initialize_all_sessions(self) -> int:
        """Schedule every active auto-advancing session. Returns how many were scheduled."""
        scheduled = 0
        for session in await self.store.list_sessions(SessionStatus.ACTIVE):
            if await self.initialize_session(session.id) is not None:
                scheduled += 1
        logger.info("Turn scheduler initialized %d sessions", scheduled)
        return scheduled

    async def advance_turn(self, session_id: str) -> TurnReport:
        """Process the turn end now, then schedule the next one a full turn length out."""
        self.cancel(session_id)
        report = await self.orchestrator.process_turn_end(session_id)
        session = await self.store.get_session(session_id)
        if session.auto_advance_enabled:
            self.schedule_turn_end(session_id, self.turn_length_seconds)
        return report

    async def set_auto_advance(self, session_id: str, enabled: bool) -> None:
        session = await self.store.get_session(session_id)
        session.auto_advance_enabled = enabled
        await self.store.save_session(session)
        if enabled:
            await self.initialize_session(session_id)
        else:
            self.cancel(session_id)
        logger.info("Auto-advance %s for session %s", "enabled" if enabled else "disabled", session_id)

    async def pause(self, session_id: str) -> None:
        await self.set_auto_advance(session_id, False)

    async def resume(self, session_id: str) -> None:
        await self.set_auto_advance(session_id, True)

    async def turn_status(self, session_id: str) -> TurnStatus:
        session = await self.store.get_session(session_id)
        return TurnStatus(
            session_id=session.id,
            current_turn=session.current_turn,
            in_game_date=session.in_game_date,
            status=session.status,
            auto_advance_enabled=session.auto_advance_enabled,
            turn_end_time=session.turn_end_time,
            seconds_remaining=max(0.0, (session.turn_end_time - utcnow()).total_seconds()),
            scheduled=self.is_scheduled(session_id),
        )

    async def shutdown(self) -> None:
        """Cancel pending timers and wait for turns already running."""
        for session_id in list(self._handles):
            self.cancel(session_id)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Turn scheduler stopped")
