"""
Tests for the NPC vote simulator.

Validates:
- Ideology distance and adjusted score
- Cascade allocation conserves every voter
- Ranking prefers the closest, best-known candidate
"""

from __future__ import annotations

import math
import random

import pytest

from polsim.elections.voting import (
    NPCVoteSimulator,
    VotingBloc,
    adjusted_score,
    allocate_votes,
    bloc_from_cohort,
    ideology_distance,
)
from polsim.model.schema import (
    Candidate,
    CulturalFacet,
    DemographicCohort,
    EconomicFacet,
    Gender,
    IdeologyScore,
    LocationalFacet,
    PoliticalCube,
    PoliticalPosition,
    SocialClass,
)


class TestScoring:

    def test_ideology_distance_weights(self):
        """Each axis should carry its own weight in the distance."""
        voter = IdeologyScore()
        candidate = IdeologyScore(economic=2, social=-10, personal=5)
        assert ideology_distance(voter, candidate) == pytest.approx(1.0 + 3.0 + 1.0)

    def test_adjusted_score(self):
        """Approval should adjust the ideology score."""
        score = adjusted_score(distance=5, reputation=50, funding=math.e - 1, endorsements=2)
        assert score == pytest.approx(5 - 1 - 0.1 - 1)

    def test_reputation_lowers_score(self):
        """Higher approval should lower the score."""
        assert adjusted_score(3, 80, 0, 0) < adjusted_score(3, 20, 0, 0)


class TestAllocateVotes:

    def test_single_candidate_takes_all(self):
        """A lone candidate should take the whole bloc."""
        assert allocate_votes(1234, ["a"], random.Random(1)) == {"a": 1234}

    def test_no_candidates(self):
        """No candidates should mean no votes."""
        assert allocate_votes(1000, [], random.Random(1)) == {}

    def test_two_candidates_conserve_population(self):
        """Two-way splits should count every voter."""
        rng = random.Random(2)
        for _ in range(500):
            votes = allocate_votes(999, ["a", "b"], rng)
            assert sum(votes.values()) == 999
            assert votes["a"] > votes["b"]

    def test_three_candidates_conserve_population(self):
        """Three-way splits should count every voter."""
        rng = random.Random(3)
        for _ in range(1000):
            votes = allocate_votes(1000, ["a", "b", "c"], rng)
            assert sum(votes.values()) == 1000
            assert 400 <= votes["a"] <= 600
            assert all(v >= 0 for v in votes.values())

    def test_many_candidates_and_small_populations(self):
        rng = random.Random(4)
        for population in (0, 1, 2, 3, 7, 10, 101):
            for count in range(1, 8):
                ids = [f"c{i}" for i in range(count)]
                votes = allocate_votes(population, ids, rng)
                assert sum(votes.values()) == population
                assert all(v >= 0 for v in votes.values())

    def test_remainder_goes_to_better_ranked(self):
        """Rounding remainders should go to the better-ranked candidate."""
        class Fixed(random.Random):
            def random(self):
                return 0.0

        # leader 40%, runner-up 50% of 60 = 30, remaining 30 over 4 → 8, 8, 7, 7
        votes = allocate_votes(100, ["a", "b", "c", "d", "e", "f"], Fixed())
        assert votes == {"a": 40, "b": 30, "c": 8, "d": 8, "e": 7, "f": 7}


class TestNPCVoteSimulator:

    def setup_method(self):
        self.simulator = NPCVoteSimulator(random.Random(9))

    def test_closest_candidate_leads_each_bloc(self):
        """The closest candidate should lead each bloc."""
        bloc = VotingBloc(cohort_id="c1", population=1000, ideology=IdeologyScore(economic=8))
        near = Candidate(player_id="near", ideology=IdeologyScore(economic=7))
        far = Candidate(player_id="far", ideology=IdeologyScore(economic=-8))
        assert self.simulator.rank(bloc, [far, near]) == ["near", "far"]

    def test_reputation_override_can_flip_ranking(self):
        """Strong approval should be able to flip the ranking."""
        bloc = VotingBloc(cohort_id="c1", population=1000)
        a = Candidate(player_id="a", ideology=IdeologyScore(economic=1))
        b = Candidate(player_id="b", ideology=IdeologyScore(economic=2))
        assert self.simulator.rank(bloc, [a, b]) == ["a", "b"]
        reputations = {("a", "c1"): 0.0, ("b", "c1"): 100.0}
        assert self.simulator.rank(bloc, [a, b], reputations) == ["b", "a"]

    def test_simulate_sums_bloc_populations(self):
        """Simulated totals should sum the bloc populations."""
        blocs = [
            VotingBloc(cohort_id="c1", population=700, ideology=IdeologyScore(economic=5)),
            VotingBloc(cohort_id="c2", population=300, ideology=IdeologyScore(economic=-5)),
            VotingBloc(cohort_id="empty", population=0),
        ]
        candidates = [
            Candidate(player_id="right", ideology=IdeologyScore(economic=5)),
            Candidate(player_id="left", ideology=IdeologyScore(economic=-5)),
            Candidate(player_id="centre"),
        ]
        tally = self.simulator.simulate(candidates, blocs)
        assert sum(tally.values()) == 1000
        assert set(tally) == {"right", "left", "centre"}

    def test_simulate_without_candidates(self):
        assert self.simulator.simulate([], [VotingBloc(cohort_id="c1", population=10)]) == {}

    def test_bloc_from_cohort_maps_authority_to_personal(self):
        """Bloc positions should map the authority axis from the cohort."""
        cohort = DemographicCohort(
            id="c1",
            economic=EconomicFacet(
                social_class=SocialClass.UPPER, occupation="merchant", gender=Gender.MALE
            ),
            cultural=CulturalFacet(ethnicity="English"),
            locational=LocationalFacet(province="Auckland"),
            population=250,
            can_vote=True,
            default_position=PoliticalPosition(
                cube=PoliticalCube(economic=6, authority=-3, social=2)
            ),
        )
        bloc = bloc_from_cohort(cohort)
        assert bloc.population == 250
        assert bloc.ideology == IdeologyScore(economic=6, social=2, personal=-3)
