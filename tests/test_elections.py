"""
Tests for the Election Service — candidacy through results.
"""

from __future__ import annotations

import asyncio
import random
from datetime import date

import pytest

from polsim.elections.service import SYNTHETIC_BLOC_ID, ElectionService
from polsim.elections.voting import NPCVoteSimulator
from polsim.errors import InvalidStateError, NotFoundError
from polsim.model.schema import (
    CulturalFacet,
    DemographicCohort,
    EconomicFacet,
    ElectionStatus,
    Gender,
    IdeologyScore,
    LocationalFacet,
    PoliticalCube,
    PoliticalPosition,
    PropertyOwnership,
    ReputationRecord,
    SocialClass,
)
from polsim.reputation.service import ReputationService
from polsim.storage.memory import MemoryStore


def _cohort(cohort_id: str, province: str, population: int, economic: float) -> DemographicCohort:
    return DemographicCohort(
        id=cohort_id,
        economic=EconomicFacet(
            social_class=SocialClass.MIDDLE,
            occupation="farmer",
            gender=Gender.MALE,
            property_ownership=PropertyOwnership.LANDOWNER,
        ),
        cultural=CulturalFacet(ethnicity="English"),
        locational=LocationalFacet(province=province),
        population=population,
        can_vote=True,
        default_position=PoliticalPosition(cube=PoliticalCube(economic=economic)),
    )


class TestElectionService:

    def setup_method(self):
        self.store = MemoryStore()
        self.service = ElectionService(
            self.store, self.store, simulator=NPCVoteSimulator(random.Random(5))
        )
        asyncio.run(self.store.save_cohort(_cohort("canterbury-a", "Canterbury", 600, 8)))
        asyncio.run(self.store.save_cohort(_cohort("canterbury-b", "Canterbury", 400, -8)))
        asyncio.run(self.store.save_cohort(_cohort("canterbury-empty", "Canterbury", 0, 0)))

    async def _election_with_candidates(self):
        election = await self.service.open_election("s1", "Canterbury")
        await self.service.declare_candidacy(election.id, "right", IdeologyScore(economic=8))
        await self.service.declare_candidacy(election.id, "left", IdeologyScore(economic=-8))
        return election

    def test_run_election_conserves_votes(self):
        """Every voter in the province should be counted exactly once."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.cast_player_vote(election.id, "voter-1", "left")
            return await self.service.run_election(election.id, turn=12, held_on=date(1855, 11, 20))

        result = asyncio.run(scenario())
        assert result.status == ElectionStatus.COMPLETED
        assert sum(result.results.values()) == 1001
        assert result.winner_id == max(result.results, key=result.results.get)
        assert result.turnout == pytest.approx(100.1)
        assert result.province_population == 1000
        assert result.held_turn == 12
        assert result.held_on == date(1855, 11, 20)

    def test_majority_bloc_favours_its_candidate(self):
        """The largest bloc should carry its closest candidate."""
        async def scenario():
            election = await self._election_with_candidates()
            return await self.service.run_election(election.id)

        result = asyncio.run(scenario())
        # "right" leads the 600 bloc with at least 40% and collects the two-way remainder.
        assert result.results["right"] >= 0.4 * 600

    def test_synthetic_bloc_when_province_has_no_cohorts(self):
        """An empty province should fall back to a synthetic bloc."""
        async def scenario():
            election = await self.service.open_election("s1", "Nelson", province_population=2500)
            await self.service.declare_candidacy(election.id, "solo", IdeologyScore())
            return await self.service.run_election(election.id)

        result = asyncio.run(scenario())
        assert result.results == {"solo": 2500}
        assert result.winner_id == "solo"
        assert result.turnout == 100.0

    def test_synthetic_bloc_default_population(self):
        service = ElectionService(self.store, self.store, default_population=10000)

        async def scenario():
            election = await service.open_election("s1", "Marlborough")
            await service.declare_candidacy(election.id, "a", IdeologyScore())
            await service.declare_candidacy(election.id, "b", IdeologyScore(social=4))
            return await service.run_election(election.id)

        result = asyncio.run(scenario())
        assert sum(result.results.values()) == 10000
        assert SYNTHETIC_BLOC_ID not in result.results

    def test_duplicate_candidacy_rejected(self):
        """A player should only stand once per election."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.declare_candidacy(election.id, "left", IdeologyScore())

        with pytest.raises(InvalidStateError):
            asyncio.run(scenario())

    def test_closed_election_rejects_changes(self):
        """A completed election should reject further changes."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.run_election(election.id)
            await self.service.cast_player_vote(election.id, "late", "left")

        with pytest.raises(InvalidStateError):
            asyncio.run(scenario())

    def test_vote_for_unknown_candidate(self):
        """Voting for someone not standing should be rejected."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.cast_player_vote(election.id, "voter", "nobody")

        with pytest.raises(NotFoundError):
            asyncio.run(scenario())

    def test_double_player_vote_rejected(self):
        """A player should only cast one vote."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.cast_player_vote(election.id, "voter", "left")
            await self.service.cast_player_vote(election.id, "voter", "right")

        with pytest.raises(InvalidStateError):
            asyncio.run(scenario())

    def test_withdraw_drops_votes(self):
        """Withdrawing should remove the candidate and their votes."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.cast_player_vote(election.id, "voter", "left")
            return await self.service.withdraw_candidacy(election.id, "left")

        election = asyncio.run(scenario())
        assert [c.player_id for c in election.candidates] == ["right"]
        assert election.player_votes == {}

    def test_donations_and_endorsements(self):
        """Donations and endorsements should accumulate on the candidate."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.donate(election.id, "left", 250)
            await self.service.donate(election.id, "left", 50)
            await self.service.endorse_candidate(election.id, "left", "ally")
            return await self.store.get_election(election.id)

        election = asyncio.run(scenario())
        left = election.candidate("left")
        assert left.funding_raised == 300
        assert left.endorsements == ["ally"]

    def test_non_positive_donation_rejected(self):
        """Donations must be positive."""
        async def scenario():
            election = await self._election_with_candidates()
            await self.service.donate(election.id, "left", 0)

        with pytest.raises(ValueError):
            asyncio.run(scenario())

    def test_run_due_elections(self):
        """Only the session's open elections should run."""
        async def scenario():
            first = await self._election_with_candidates()
            second = await self.service.open_election("s1", "Nelson", province_population=100)
            await self.service.declare_candidacy(second.id, "x", IdeologyScore())
            await self.service.open_election("other-session", "Nelson")
            held = await self.service.run_due_elections("s1", turn=20)
            return first, second, held

        first, second, held = asyncio.run(scenario())
        assert {e.id for e in held} == {first.id, second.id}

    def test_cohort_reputation_feeds_ranking(self):
        """Cohort approval should shift the election ranking."""
        reputation = ReputationService(self.store)
        service = ElectionService(
            self.store, self.store,
            simulator=NPCVoteSimulator(random.Random(1)),
            reputation_service=reputation,
        )

        async def scenario():
            for cohort_id in ("canterbury-a", "canterbury-b"):
                await self.store.save_reputation(
                    ReputationRecord(player_id="left", cohort_id=cohort_id, approval=100)
                )
                await self.store.save_reputation(
                    ReputationRecord(player_id="right", cohort_id=cohort_id, approval=0)
                )
            election = await service.open_election("s1", "Canterbury")
            await service.declare_candidacy(election.id, "right", IdeologyScore(economic=1))
            await service.declare_candidacy(election.id, "left", IdeologyScore(economic=0))
            return await service.run_election(election.id)

        result = asyncio.run(scenario())
        assert result.winner_id == "left"
