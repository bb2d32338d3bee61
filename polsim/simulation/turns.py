"""
Turn Orchestrator — the end-of-turn pipeline of a game session.

Ordered steps, all against the NEW turn number:
    1. Complete campaigns whose end turn arrived
    2. Decay every reputation record toward the baseline
    3. Enact passed policies, land due delayed effects, and estimate
       economic effects for enacted policies that carry none
    4. Compact reputation history every few turns
    5. Annual immigration and elections, on the turn whose date window
       crosses into the target month
    6. Advance the session counter, date and turn window

The session is marked ``processing`` for the duration. If any step fails the
status is restored to ``active`` and the original exception propagates; the
turn counter is not advanced.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from uuid import UUID

from pydantic import BaseModel, Field

from polsim.config import settings
from polsim.elections.service import ElectionService
from polsim.errors import InvalidStateError, MalformedResponseError, NarrativeUnavailableError
from polsim.governance.campaigns import CampaignManager
from polsim.governance.policies import AppliedEffect, PolicyLifecycleManager
from polsim.model.schema import GameSession, Policy, PolicyStatus, SessionStatus, utcnow
from polsim.narrative.client import NarrativeClient
from polsim.reputation.service import ReputationService
from polsim.simulation.calendar import (
    advance_in_game_date,
    is_election_due,
    is_immigration_due,
)
from polsim.simulation.immigration import ImmigrationReport, ImmigrationService
from polsim.storage.base import Store

logger = logging.getLogger(__name__)


class TurnReport(BaseModel):
    """What one end-of-turn pass did."""

    session_id: str
    previous_turn: int
    new_turn: int
    in_game_date: date
    campaigns_completed: list[UUID] = Field(default_factory=list)
    records_decayed: int = 0
    policies_enacted: list[UUID] = Field(default_factory=list)
    delayed_effects: list[AppliedEffect] = Field(default_factory=list)
    policies_estimated: list[UUID] = Field(default_factory=list)
    records_compacted: int = 0
    immigration: ImmigrationReport | None = None
    elections_held: list[UUID] = Field(default_factory=list)
    processed_at: datetime = Field(default_factory=utcnow)


class TurnOrchestrator:
    """
    Runs the end-of-turn pipeline for a session.

    Usage:
        orchestrator = TurnOrchestrator(store, reputation, policies, campaigns,
                                        elections, immigration)
        session = await orchestrator.create_session("Colony of Aotearoa")
        report = await orchestrator.process_turn_end(session.id)
    """

    def __init__(
        self,
        store: Store,
        reputation_service: ReputationService,
        policy_manager: PolicyLifecycleManager,
        campaign_manager: CampaignManager,
        election_service: ElectionService,
        immigration_service: ImmigrationService,
        narrative: NarrativeClient | None = None,
        compaction_interval: int | None = None,
        turn_length: timedelta | None = None,
    ) -> None:
        self.store = store
        self.reputation_service = reputation_service
        self.policy_manager = policy_manager
        self.campaign_manager = campaign_manager
        self.election_service = election_service
        self.immigration_service = immigration_service
        self.narrative = narrative
        self.compaction_interval = (
            settings.history_compaction_interval
            if compaction_interval is None
            else compaction_interval
        )
        self.turn_length = turn_length or timedelta(seconds=settings.turn_length_seconds)

    async def create_session(self, name: str, start_date: date | None = None) -> GameSession:
        """Open a session at turn 1 with its first turn window starting now."""
        now = utcnow()
        session = GameSession(
            name=name,
            in_game_date=start_date or settings.game_start_date,
            turn_start_time=now,
            turn_end_time=now + self.turn_length,
        )
        await self.store.save_session(session)
        logger.info("Session created: %s (%s) at %s", session.id, name, session.in_game_date)
        return session

    async def process_turn_end(self, session_id: str) -> TurnReport:
        """
        Close the current turn of a session and open the next.

        Args:
            session_id: Session to advance.

        Returns:
            A TurnReport describing every step taken.

        Raises:
            NotFoundError: If the session does not exist.
            InvalidStateError: If the session is already processing a turn.
        """
        session = await self.store.get_session(session_id)
        if session.status == SessionStatus.PROCESSING:
            raise InvalidStateError(f"Session {session_id} is already processing a turn")

        session.status = SessionStatus.PROCESSING
        await self.store.save_session(session)

        try:
            report = await self._run_steps(session)
        except Exception:
            logger.exception("Turn processing failed for session %s", session_id)
            session.status = SessionStatus.ACTIVE
            await self.store.save_session(session)
            raise

        now = utcnow()
        session.current_turn = report.new_turn
        session.in_game_date = report.in_game_date
        session.turn_start_time = now
        session.turn_end_time = now + self.turn_length
        session.last_turn_at = now
        session.status = SessionStatus.ACTIVE
        await self.store.save_session(session)

        logger.info(
            "Session %s advanced to turn %d (%s)",
            session_id, report.new_turn, report.in_game_date,
        )
        return report

    async def _run_steps(self, session: GameSession) -> TurnReport:
        new_turn = session.current_turn + 1
        new_date = advance_in_game_date(session.in_game_date)
        report = TurnReport(
            session_id=session.id,
            previous_turn=session.current_turn,
            new_turn=new_turn,
            in_game_date=new_date,
        )

        # ── 1. Campaigns ──────────────────────────────────────
        completed = await self.campaign_manager.complete_due_campaigns(session.id, new_turn)
        report.campaigns_completed = [c.id for c in completed]

        # ── 2. Decay ──────────────────────────────────────────
        report.records_decayed = await self.reputation_service.decay_session(session.id, new_turn)

        # ── 3. Policies ───────────────────────────────────────
        enacted = await self.policy_manager.enact_passed(session.id, new_turn)
        report.policies_enacted = [p.id for p in enacted]
        report.delayed_effects = await self.policy_manager.apply_due_delayed_effects(
            session.id, new_turn
        )
        if self.narrative is not None:
            report.policies_estimated = await self._estimate_effects(enacted)

        # ── 4. Compaction ─────────────────────────────────────
        if self.compaction_interval and new_turn % self.compaction_interval == 0:
            report.records_compacted = await self.reputation_service.compact_history(session.id)

        # ── 5. Annual cadence ─────────────────────────────────
        if is_immigration_due(new_date, since=session.in_game_date):
            report.immigration = await self.immigration_service.process_annual_immigration(
                session.id
            )
        if is_election_due(new_date, since=session.in_game_date):
            held = await self.election_service.run_due_elections(session.id, new_turn, new_date)
            report.elections_held = [e.id for e in held]

        return report

    async def _estimate_effects(self, enacted: list[Policy]) -> list[UUID]:
        estimated = []
        for policy in enacted:
            if policy.economic_impact:
                continue
            try:
                estimate = await self.narrative.estimate_policy_effects(policy)
            except (MalformedResponseError, NarrativeUnavailableError) as e:
                logger.warning("Skipping effect estimate for policy %s: %s", policy.id, e)
                continue
            fresh = await self.store.get_policy(policy.id)
            if fresh.status != PolicyStatus.ENACTED:
                continue
            fresh.economic_impact = estimate.as_impact()
            await self.store.save_policy(fresh)
            estimated.append(policy.id)
        return estimated
