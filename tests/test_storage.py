"""
Tests for the SQL store — documents round-trip through SQLite.

Validates:
- Each entity round-trips through its JSON document
- Lookups of unknown ids raise NotFoundError
- Lifted columns drive the filters
- Voting cohorts come back largest first
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from polsim.errors import NotFoundError
from polsim.model.issues import Issue
from polsim.model.schema import (
    Campaign,
    CampaignStatus,
    CulturalFacet,
    DemographicCohort,
    EconomicFacet,
    Election,
    ElectionStatus,
    Endorsement,
    GameSession,
    Gender,
    LocationalFacet,
    Policy,
    PolicyPosition,
    PolicyStatus,
    ReputationRecord,
    SessionStatus,
    SocialClass,
    VoteChoice,
)
from polsim.reputation.report import run_report
from polsim.reputation.service import ReputationService
from polsim.storage.models import EndorsementDB
from polsim.storage.service import SqlStore


def _cohort(cohort_id: str, province: str = "Auckland", population: int = 100, can_vote: bool = True):
    return DemographicCohort(
        id=cohort_id,
        economic=EconomicFacet(social_class=SocialClass.MIDDLE, occupation="clerk", gender=Gender.MALE),
        cultural=CulturalFacet(ethnicity="Scottish", religion="Presbyterian"),
        locational=LocationalFacet(province=province),
        population=population,
        can_vote=can_vote,
    )


def _policy(title: str, category: str = "tariff", session_id: str = "s1") -> Policy:
    return Policy(
        session_id=session_id,
        title=title,
        category=category,
        proposed_by="p1",
        proposed_turn=1,
        position=PolicyPosition(issue_positions={Issue.PROTECTIONISM: 4}),
    )


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'polsim.db'}"


@pytest.fixture
def store(db_url):
    store = SqlStore(db_url)
    store.initialize()
    yield store
    store.engine.dispose()


class TestCohorts:

    def test_round_trip(self, store):
        """A saved cohort should load back unchanged."""
        cohort = _cohort("clerks")
        asyncio.run(store.save_cohort(cohort))
        assert asyncio.run(store.get_cohort("clerks")) == cohort

    def test_unknown_cohort(self, store):
        """Loading a missing cohort should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(store.get_cohort("nobody"))

    def test_province_filter_and_voting_order(self, store):
        """Cohorts should filter by province and sort for voting."""
        async def scenario():
            await store.save_cohort(_cohort("a", population=50))
            await store.save_cohort(_cohort("b", population=500))
            await store.save_cohort(_cohort("c", province="Otago", population=300))
            await store.save_cohort(_cohort("d", population=900, can_vote=False))
            return (
                await store.list_cohorts("Auckland"),
                await store.list_voting_cohorts(),
            )

        auckland, voters = asyncio.run(scenario())
        assert {c.id for c in auckland} == {"a", "b", "d"}
        assert [c.id for c in voters] == ["b", "c", "a"]

    def test_save_overwrites_population(self, store):
        """Saving again should overwrite the population."""
        async def scenario():
            cohort = _cohort("clerks")
            await store.save_cohort(cohort)
            cohort.population = 250
            await store.save_cohort(cohort)
            return await store.list_cohorts()

        cohorts = asyncio.run(scenario())
        assert len(cohorts) == 1
        assert cohorts[0].population == 250


class TestReputations:

    def test_missing_record_is_none(self, store):
        """A missing reputation record should load as None."""
        assert asyncio.run(store.find_reputation("p1", "clerks")) is None

    def test_get_or_create_does_not_persist(self, store):
        """get_or_create should not save the fresh record."""
        async def scenario():
            record = await store.get_or_create_reputation("p1", "clerks", "s1")
            return record, await store.find_reputation("p1", "clerks")

        record, stored = asyncio.run(scenario())
        assert record.approval == 40.0
        assert stored is None

    def test_round_trip_and_filters(self, store):
        async def scenario():
            await store.save_reputation(ReputationRecord(
                player_id="p1", cohort_id="clerks", session_id="s1", approval=62.5, turn_updated=4
            ))
            await store.save_reputation(ReputationRecord(
                player_id="p2", cohort_id="clerks", session_id="s1", approval=30
            ))
            await store.save_reputation(ReputationRecord(
                player_id="p1", cohort_id="miners", session_id="s2", approval=45
            ))
            return (
                await store.find_reputation("p1", "clerks"),
                await store.list_reputations(session_id="s1"),
                await store.list_reputations(player_id="p1"),
                await store.list_reputations(session_id="s1", player_id="p1"),
            )

        record, by_session, by_player, both = asyncio.run(scenario())
        assert record.approval == 62.5
        assert record.turn_updated == 4
        assert {r.player_id for r in by_session} == {"p1", "p2"}
        assert {r.cohort_id for r in by_player} == {"clerks", "miners"}
        assert len(both) == 1

    def test_endorsement_saved(self, store):
        """Endorsements should be stored."""
        endorsement = Endorsement(
            session_id="s1", endorser_id="p1", endorsed_id="p2", turn=3,
            reputation_changes={"clerks": 4},
        )
        asyncio.run(store.save_endorsement(endorsement))
        with store.SessionLocal() as session:
            row = session.get(EndorsementDB, endorsement.id)
            assert row.endorsed_id == "p2"
            assert row.document["reputation_changes"] == {"clerks": 4}


class TestPolicies:

    def test_round_trip(self, store):
        """A saved policy should load back unchanged."""
        policy = _policy("Customs Act")
        policy.votes["p2"] = VoteChoice.YES
        asyncio.run(store.save_policy(policy))

        stored = asyncio.run(store.get_policy(policy.id))
        assert stored == policy
        assert stored.position.issue_positions == {Issue.PROTECTIONISM: 4}

    def test_unknown_policy(self, store):
        """Loading a missing policy should raise NotFoundError."""
        with pytest.raises(NotFoundError):
            asyncio.run(store.get_policy(_policy("ghost").id))

    def test_filters_and_batch_save(self, store):
        """Policies should filter by status and save in batches."""
        async def scenario():
            old, new, road = _policy("Old Tariff"), _policy("New Tariff"), _policy("Road", "infrastructure")
            other = _policy("Elsewhere", session_id="s2")
            await store.save_policies([old, new, road, other])
            old.status = PolicyStatus.SUPERSEDED
            new.status = PolicyStatus.ENACTED
            await store.save_policies([new, old])
            return (
                await store.find_policies("s1"),
                await store.find_policies("s1", category="tariff"),
                await store.find_policies("s1", category="tariff", status=PolicyStatus.ENACTED),
            )

        everything, tariffs, enacted = asyncio.run(scenario())
        assert len(everything) == 3
        assert len(tariffs) == 2
        assert [p.title for p in enacted] == ["New Tariff"]


class TestCampaignsElectionsSessions:

    def test_campaign_filters(self, store):
        """Campaigns should filter by player and status."""
        async def scenario():
            active = Campaign(session_id="s1", player_id="p1", cohort_id="clerks",
                              start_turn=1, duration=12, boost=3)
            done = Campaign(session_id="s1", player_id="p1", cohort_id="miners",
                            start_turn=1, duration=2, boost=1, status=CampaignStatus.COMPLETED)
            await store.save_campaign(active)
            await store.save_campaign(done)
            return (
                active,
                await store.get_campaign(active.id),
                await store.find_campaigns("s1", CampaignStatus.ACTIVE),
                await store.find_campaigns("s1", player_id="p1", cohort_id="miners"),
            )

        active, stored, running, miners = asyncio.run(scenario())
        assert stored == active
        assert stored.end_turn == 13
        assert [c.id for c in running] == [active.id]
        assert miners[0].status == CampaignStatus.COMPLETED

    def test_election_round_trip(self, store):
        """A saved election should load back unchanged."""
        async def scenario():
            election = Election(session_id="s1", province="Otago", held_on=None)
            await store.save_election(election)
            election.status = ElectionStatus.COMPLETED
            election.results = {"p1": 60}
            election.held_on = date(1855, 11, 15)
            await store.save_election(election)
            return (
                await store.get_election(election.id),
                await store.find_elections("s1", ElectionStatus.OPEN),
            )

        stored, still_open = asyncio.run(scenario())
        assert stored.results == {"p1": 60}
        assert stored.held_on == date(1855, 11, 15)
        assert still_open == []

    def test_session_round_trip(self, store):
        """A saved session should load back unchanged."""
        now = datetime.now(timezone.utc)
        session = GameSession(
            name="Colony", in_game_date=date(1853, 1, 1),
            turn_start_time=now, turn_end_time=now + timedelta(hours=24),
        )

        async def scenario():
            await store.save_session(session)
            return (
                await store.get_session(session.id),
                await store.list_sessions(SessionStatus.ACTIVE),
                await store.list_sessions(SessionStatus.PROCESSING),
            )

        stored, active, processing = asyncio.run(scenario())
        assert stored == session
        assert [s.id for s in active] == [session.id]
        assert processing == []

    def test_unknown_session(self, store):
        with pytest.raises(NotFoundError):
            asyncio.run(store.get_session("missing"))


class TestReputationReport:

    def test_report_with_records(self, store, db_url):
        """The report should succeed when records exist."""
        async def seed():
            await store.save_cohort(_cohort("clerks", population=300))
            await store.save_cohort(_cohort("diggers", province="Otago", population=100))
            service = ReputationService(store)
            await service.initialize_player("p1", "s1")

        asyncio.run(seed())
        assert asyncio.run(run_report(db_url, "p1", cohorts=1)) is True

    def test_report_without_records(self, db_url):
        """An empty store should report no records."""
        assert asyncio.run(run_report(db_url, "nobody")) is False
