"""
Tests for the Turn Orchestrator — the end-of-turn pipeline.

Validates:
- Session creation and the turn counter/date advance
- Step ordering effects (campaigns, decay, enactment, annual cadence)
- Failure restores the session and propagates
"""

from __future__ import annotations

import asyncio
import random
from datetime import date, timedelta

import pytest

from polsim.elections.service import ElectionService
from polsim.elections.voting import NPCVoteSimulator
from polsim.errors import (
    InvalidStateError,
    MalformedResponseError,
    NarrativeUnavailableError,
    NotFoundError,
)
from polsim.governance.campaigns import CampaignManager
from polsim.governance.policies import PolicyLifecycleManager
from polsim.model.schema import (
    ApprovalEntry,
    CampaignStatus,
    CulturalFacet,
    DemographicCohort,
    EconomicFacet,
    ElectionStatus,
    Gender,
    IdeologyScore,
    LocationalFacet,
    PolicyStatus,
    ReputationRecord,
    ReputationSource,
    SessionStatus,
    SocialClass,
    VoteChoice,
)
from polsim.narrative.client import PolicyEffectEstimate
from polsim.reputation.service import ReputationService
from polsim.simulation.immigration import ImmigrationService
from polsim.simulation.turns import TurnOrchestrator
from polsim.storage.memory import MemoryStore


def _cohort(cohort_id: str, population: int = 1000) -> DemographicCohort:
    return DemographicCohort(
        id=cohort_id,
        economic=EconomicFacet(
            social_class=SocialClass.MIDDLE, occupation="shopkeeper", gender=Gender.FEMALE
        ),
        cultural=CulturalFacet(ethnicity="English"),
        locational=LocationalFacet(province="Auckland"),
        population=population,
        can_vote=False,
    )


class _FakeNarrative:
    def __init__(self, fail_titles=(), unavailable=False):
        self.fail_titles = set(fail_titles)
        self.unavailable = unavailable
        self.requested = []

    async def estimate_policy_effects(self, policy):
        self.requested.append(policy.title)
        if self.unavailable:
            raise NarrativeUnavailableError("provider down")
        if policy.title in self.fail_titles:
            raise MalformedResponseError("not json", raw="???")
        return PolicyEffectEstimate(gdp_change=1.5, unemployment_change=-0.5, revenue=120)


class _BrokenCampaigns:
    async def complete_due_campaigns(self, session_id, turn):
        raise RuntimeError("store unavailable")


class TestTurnOrchestrator:

    def setup_method(self):
        self.store = MemoryStore()
        rng = random.Random(8)
        self.reputation = ReputationService(self.store, rng=rng)
        self.policies = PolicyLifecycleManager(self.store, reputation_service=self.reputation)
        self.campaigns = CampaignManager(self.store, self.store, self.reputation, rng=rng)
        self.elections = ElectionService(self.store, self.store, simulator=NPCVoteSimulator(rng))
        self.immigration = ImmigrationService(self.store, self.store, rate=0.02)
        self.narrative = _FakeNarrative(fail_titles={"Vague Act"})
        self.orchestrator = self._orchestrator()
        asyncio.run(self.store.save_cohort(_cohort("shopkeepers")))

    def _orchestrator(self, campaigns=None) -> TurnOrchestrator:
        return TurnOrchestrator(
            self.store,
            self.reputation,
            self.policies,
            campaigns or self.campaigns,
            self.elections,
            self.immigration,
            narrative=self.narrative,
            compaction_interval=3,
        )

    async def _session(self, start: date = date(1853, 1, 1), turn: int = 1):
        session = await self.orchestrator.create_session("Colony", start_date=start)
        session.current_turn = turn
        await self.store.save_session(session)
        return session

    def test_create_session(self):
        """A new session should start active on turn 1."""
        session = asyncio.run(self.orchestrator.create_session("Colony"))
        assert session.current_turn == 1
        assert session.status == SessionStatus.ACTIVE
        assert session.in_game_date == date(1853, 1, 1)
        assert session.turn_end_time - session.turn_start_time == timedelta(hours=24)
        assert session.auto_advance_enabled is True

    def test_advances_counter_date_and_window(self):
        """A turn should advance the counter and the in-game date."""
        async def scenario():
            session = await self._session()
            report = await self.orchestrator.process_turn_end(session.id)
            return session, report, await self.store.get_session(session.id)

        before, report, after = asyncio.run(scenario())
        assert report.previous_turn == 1
        assert report.new_turn == 2
        assert after.current_turn == 2
        assert after.in_game_date == date(1853, 2, 6)
        assert after.status == SessionStatus.ACTIVE
        assert after.last_turn_at is not None
        assert after.turn_end_time > before.turn_end_time

    def test_unknown_session(self):
        """Processing a missing session should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(self.orchestrator.process_turn_end("missing"))

    def test_processing_session_rejected(self):
        """A session already processing should be rejected."""
        async def scenario():
            session = await self._session()
            session.status = SessionStatus.PROCESSING
            await self.store.save_session(session)
            await self.orchestrator.process_turn_end(session.id)

        with pytest.raises(InvalidStateError):
            asyncio.run(scenario())

    def test_failure_restores_active_and_propagates(self):
        """A failing step should restore the session and re-raise."""
        orchestrator = self._orchestrator(campaigns=_BrokenCampaigns())

        async def scenario():
            session = await self._session()
            await orchestrator.process_turn_end(session.id)

        with pytest.raises(RuntimeError, match="store unavailable"):
            asyncio.run(scenario())
        session = next(iter(self.store.sessions.values()))
        assert session.status == SessionStatus.ACTIVE
        assert session.current_turn == 1

    def test_campaign_completes_on_new_turn(self):
        """Campaigns ending on the new turn should pay out."""
        async def scenario():
            session = await self._session(turn=6)
            campaign = await self.campaigns.start_campaign(
                session.id, "p1", "shopkeepers", start_turn=5, duration=2, boost=4
            )
            report = await self.orchestrator.process_turn_end(session.id)
            return campaign, report, await self.store.get_campaign(campaign.id)

        campaign, report, stored = asyncio.run(scenario())
        assert report.new_turn == 7
        assert report.campaigns_completed == [campaign.id]
        assert stored.status == CampaignStatus.COMPLETED
        record = asyncio.run(self.store.find_reputation("p1", "shopkeepers"))
        # Pull toward 40 is 0.08, under the decay floor
        assert record.approval == 44.0
        assert [e.source for e in record.history] == [ReputationSource.CAMPAIGN]

    def test_decay_runs_every_turn(self):
        """Reputation decay should run on every turn."""
        async def scenario():
            session = await self._session()
            await self.store.save_reputation(ReputationRecord(
                player_id="p1", cohort_id="shopkeepers", session_id=session.id, approval=90
            ))
            report = await self.orchestrator.process_turn_end(session.id)
            return report, await self.store.find_reputation("p1", "shopkeepers")

        report, record = asyncio.run(scenario())
        assert report.records_decayed == 1
        assert record.approval == pytest.approx(89.0)

    def test_enactment_pass_and_effect_estimation(self):
        """Passed policies should be enacted and estimated."""
        async def scenario():
            session = await self._session()
            ids = {}
            for title in ("Harbour Act", "Vague Act", "Tariff Act"):
                category = "tariff" if title == "Tariff Act" else "infrastructure"
                impact = {"revenue": 10} if title == "Tariff Act" else None
                policy = await self.policies.propose(
                    session.id, "p1", title, category, 1, economic_impact=impact
                )
                await self.policies.cast_vote(policy.id, "p2", VoteChoice.YES)
                await self.policies.resolve_vote(policy.id, 1)
                ids[title] = policy.id
            report = await self.orchestrator.process_turn_end(session.id)
            stored = {t: await self.store.get_policy(i) for t, i in ids.items()}
            return ids, report, stored

        ids, report, stored = asyncio.run(scenario())
        assert set(report.policies_enacted) == set(ids.values())
        assert all(p.status == PolicyStatus.ENACTED for p in stored.values())
        assert all(p.enacted_turn == 2 for p in stored.values())
        assert report.policies_estimated == [ids["Harbour Act"]]
        assert stored["Harbour Act"].economic_impact == {
            "gdp_change": 1.5, "unemployment_change": -0.5, "revenue": 120,
        }
        assert stored["Vague Act"].economic_impact == {}
        assert stored["Tariff Act"].economic_impact == {"revenue": 10}
        assert "Tariff Act" not in self.narrative.requested

    def test_narrative_outage_does_not_fail_turn(self):
        """An unreachable provider skips the estimate; the turn commits once."""
        self.narrative = _FakeNarrative(unavailable=True)
        orchestrator = self._orchestrator()

        async def scenario():
            session = await self._session()
            await self.store.save_reputation(ReputationRecord(
                player_id="p9", cohort_id="shopkeepers", session_id=session.id, approval=90
            ))
            policy = await self.policies.propose(session.id, "p1", "Harbour Act", "infrastructure", 1)
            await self.policies.cast_vote(policy.id, "p2", VoteChoice.YES)
            await self.policies.resolve_vote(policy.id, 1)
            report = await orchestrator.process_turn_end(session.id)
            return (
                policy,
                report,
                await self.store.get_policy(policy.id),
                await self.store.get_session(session.id),
                await self.store.find_reputation("p9", "shopkeepers"),
            )

        policy, report, stored, session, record = asyncio.run(scenario())
        assert self.narrative.requested == ["Harbour Act"]
        assert report.policies_enacted == [policy.id]
        assert report.policies_estimated == []
        assert stored.status == PolicyStatus.ENACTED
        assert stored.economic_impact == {}
        assert session.current_turn == 2
        assert session.status == SessionStatus.ACTIVE
        assert record.approval == pytest.approx(89.0)

    def test_compaction_every_third_turn(self):
        """History should be compacted every third turn."""
        entries = [
            ApprovalEntry(turn=1, approval=40, change=0, reason="seed", source=ReputationSource.SCANDAL)
            for _ in range(60)
        ]

        async def scenario(turn):
            session = await self._session(turn=turn)
            await self.store.save_reputation(ReputationRecord(
                player_id="p1", cohort_id="shopkeepers", session_id=session.id,
                approval=40, history=list(entries),
            ))
            report = await self.orchestrator.process_turn_end(session.id)
            return report, await self.store.find_reputation("p1", "shopkeepers")

        report, record = asyncio.run(scenario(turn=1))
        assert report.records_compacted == 0
        assert len(record.history) == 60

        report, record = asyncio.run(scenario(turn=2))
        assert report.new_turn == 3
        assert report.records_compacted == 1
        assert len(record.history) == 50

    def test_immigration_in_january(self):
        """Immigration should run when the turn reaches January."""
        async def scenario():
            session = await self._session(start=date(1853, 12, 10))
            return await self.orchestrator.process_turn_end(session.id)

        report = asyncio.run(scenario())
        assert report.in_game_date == date(1854, 1, 15)
        assert report.immigration is not None
        assert report.immigration.total_immigrants == 20
        cohort = asyncio.run(self.store.get_cohort("shopkeepers"))
        assert cohort.population == 1020

    def test_immigration_when_turn_jumps_over_january(self):
        """Late December to early February still brings the year's settlers."""
        async def scenario():
            session = await self._session(start=date(1853, 12, 28))
            return await self.orchestrator.process_turn_end(session.id)

        report = asyncio.run(scenario())
        assert report.in_game_date == date(1854, 2, 2)
        assert report.immigration is not None
        assert report.immigration.total_immigrants == 20

    def test_no_immigration_outside_january(self):
        """Immigration should not run in other months."""
        async def scenario():
            session = await self._session()
            return await self.orchestrator.process_turn_end(session.id)

        assert asyncio.run(scenario()).immigration is None

    def test_elections_in_election_month(self):
        """Elections should run in the election month."""
        async def scenario():
            session = await self._session(start=date(1855, 10, 10))
            election = await self.elections.open_election(
                session.id, "Auckland", province_population=1000
            )
            await self.elections.declare_candidacy(election.id, "p1", IdeologyScore())
            report = await self.orchestrator.process_turn_end(session.id)
            return election, report, await self.store.get_election(election.id)

        election, report, stored = asyncio.run(scenario())
        assert report.in_game_date == date(1855, 11, 15)
        assert report.elections_held == [election.id]
        assert stored.status == ElectionStatus.COMPLETED
        assert stored.held_turn == 2
