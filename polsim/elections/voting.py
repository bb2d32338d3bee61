"""
NPC Vote Simulator — resolves a province's vote without per-voter agents.

For every cohort, candidates are ranked by an adjusted ideology distance
(lower is better) and the cohort's population is split in a winner-take-most
cascade:

    leader       40-60% of the cohort
    runner-up    50-70% of what is left
    the rest     split evenly, leftover units to the better ranked

Every voter is allocated exactly once. With two candidates the cascade
leaves a remainder with nobody behind the runner-up; it goes to the leader.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field

from polsim.model.schema import Candidate, DemographicCohort, IdeologyScore

logger = logging.getLogger(__name__)

ECONOMIC_WEIGHT = 0.5
SOCIAL_WEIGHT = 0.3
PERSONAL_WEIGHT = 0.2

LEADER_SHARE = (0.4, 0.6)
RUNNER_UP_SHARE = (0.5, 0.7)


class VotingBloc(BaseModel):
    """A cohort reduced to what the vote simulator needs."""

    cohort_id: str
    population: int = Field(ge=0)
    ideology: IdeologyScore = Field(default_factory=IdeologyScore)


def bloc_from_cohort(cohort: DemographicCohort) -> VotingBloc:
    """Economic and social map straight across; personal reads the authority axis."""
    cube = cohort.default_position.cube
    return VotingBloc(
        cohort_id=cohort.id,
        population=cohort.population,
        ideology=IdeologyScore(
            economic=cube.economic, social=cube.social, personal=cube.authority
        ),
    )


def ideology_distance(voter: IdeologyScore, candidate: IdeologyScore) -> float:
    return (
        abs(voter.economic - candidate.economic) * ECONOMIC_WEIGHT
        + abs(voter.social - candidate.social) * SOCIAL_WEIGHT
        + abs(voter.personal - candidate.personal) * PERSONAL_WEIGHT
    )


def adjusted_score(
    distance: float,
    reputation: float,
    funding: float,
    endorsements: int,
) -> float:
    """Lower is better. Reputation, funding and endorsements all shrink the distance."""
    return distance - reputation / 50 - math.log(funding + 1) / 10 - 0.5 * endorsements


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def allocate_votes(
    population: int,
    ranked_ids: Sequence[str],
    rng: random.Random,
) -> dict[str, int]:
    """
    Split ``population`` votes over candidates ranked best first.

    Returns:
        candidate id → votes; the values always sum to ``population``.
    """
    if not ranked_ids:
        return {}
    votes = {candidate_id: 0 for candidate_id in ranked_ids}
    leader = ranked_ids[0]
    if len(ranked_ids) == 1:
        votes[leader] = population
        return votes

    low, high = LEADER_SHARE
    votes[leader] = _round(population * (low + rng.random() * (high - low)))
    remaining = population - votes[leader]

    low, high = RUNNER_UP_SHARE
    runner_up = _round(remaining * (low + rng.random() * (high - low)))
    votes[ranked_ids[1]] = runner_up
    remaining -= runner_up

    rest = ranked_ids[2:]
    if not rest:
        votes[leader] += remaining
        return votes

    share, leftover = divmod(remaining, len(rest))
    for rank, candidate_id in enumerate(rest):
        votes[candidate_id] = share + (1 if rank < leftover else 0)
    return votes


class NPCVoteSimulator:
    """Tallies NPC votes for a set of candidates over a province's blocs."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def rank(
        self,
        bloc: VotingBloc,
        candidates: Sequence[Candidate],
        reputations: Mapping[tuple[str, str], float] | None = None,
    ) -> list[str]:
        """Candidate ids ordered best first for one bloc."""
        scored = []
        for candidate in candidates:
            reputation = candidate.reputation
            if reputations is not None:
                reputation = reputations.get((candidate.player_id, bloc.cohort_id), reputation)
            score = adjusted_score(
                ideology_distance(bloc.ideology, candidate.ideology),
                reputation,
                candidate.funding_raised,
                len(candidate.endorsements),
            )
            scored.append((score, candidate.player_id))
        scored.sort(key=lambda pair: pair[0])
        return [player_id for _, player_id in scored]

    def simulate(
        self,
        candidates: Sequence[Candidate],
        blocs: Sequence[VotingBloc],
        reputations: Mapping[tuple[str, str], float] | None = None,
    ) -> dict[str, int]:
        """
        Sum the cascade allocation of every bloc.

        Args:
            candidates: Who is on the ballot.
            blocs: Voting blocs of the province, with population.
            reputations: Optional (player_id, cohort_id) → approval overrides;
                a candidate's own reputation is used where absent.

        Returns:
            candidate id → NPC votes.
        """
        tally = {c.player_id: 0 for c in candidates}
        if not candidates:
            return tally
        for bloc in blocs:
            if bloc.population <= 0:
                continue
            ranked = self.rank(bloc, candidates, reputations)
            for candidate_id, votes in allocate_votes(bloc.population, ranked, self.rng).items():
                tally[candidate_id] += votes
        logger.debug("NPC tally over %d blocs: %s", len(blocs), tally)
        return tally
