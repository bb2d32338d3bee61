"""
Election Service — candidacy, funding, endorsements, player votes and tallying.

An election is OPEN until it is run, then COMPLETED. Running it tallies NPC
votes over the province's cohorts, adds the player votes, and records the
winner and turnout.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from polsim.config import settings
from polsim.errors import InvalidStateError, NotFoundError
from polsim.elections.voting import NPCVoteSimulator, VotingBloc, bloc_from_cohort
from polsim.model.schema import Candidate, Election, ElectionStatus, IdeologyScore
from polsim.storage.base import CohortStore, ElectionStore

logger = logging.getLogger(__name__)

SYNTHETIC_BLOC_ID = "synthetic"


class ElectionService:
    """Drives elections from opening to results."""

    def __init__(
        self,
        store: ElectionStore,
        cohorts: CohortStore,
        simulator: NPCVoteSimulator | None = None,
        reputation_service: Any = None,
        default_population: int | None = None,
    ) -> None:
        """
        Args:
            store: Election persistence.
            cohorts: Cohort lookup for province composition.
            simulator: Vote simulator (a fresh one with its own RNG by default).
            reputation_service: Optional ReputationService; when set, each
                candidate's approval with each cohort feeds the ranking.
            default_population: Size of the synthetic bloc used when a province
                has no resolvable cohorts and no recorded population.
        """
        self.store = store
        self.cohorts = cohorts
        self.simulator = simulator or NPCVoteSimulator()
        self.reputation_service = reputation_service
        self.default_population = (
            settings.default_province_population
            if default_population is None
            else default_population
        )

    async def _open(self, election_id: UUID) -> Election:
        election = await self.store.get_election(election_id)
        if election.status != ElectionStatus.OPEN:
            raise InvalidStateError(f"Election {election_id} is {election.status.value}")
        return election

    @staticmethod
    def _candidate(election: Election, player_id: str) -> Candidate:
        candidate = election.candidate(player_id)
        if candidate is None:
            raise NotFoundError("Candidate", player_id)
        return candidate

    # ── Setup ──────────────────────────────────────────────────

    async def open_election(
        self,
        session_id: str,
        province: str,
        office: str = "provincial-representative",
        province_population: int | None = None,
    ) -> Election:
        election = Election(
            session_id=session_id,
            province=province,
            office=office,
            province_population=province_population,
        )
        await self.store.save_election(election)
        logger.info("Election opened: %s %s/%s", election.id, province, office)
        return election

    async def declare_candidacy(
        self,
        election_id: UUID,
        player_id: str,
        ideology: IdeologyScore,
        reputation: float = 50.0,
    ) -> Candidate:
        """
        Raises:
            InvalidStateError: If the election is closed or the player already runs.
        """
        election = await self._open(election_id)
        if election.candidate(player_id) is not None:
            raise InvalidStateError(f"Player {player_id} is already running in {election_id}")
        candidate = Candidate(player_id=player_id, ideology=ideology, reputation=reputation)
        election.candidates.append(candidate)
        await self.store.save_election(election)
        logger.info("Candidacy declared: %s in election %s", player_id, election_id)
        return candidate

    async def withdraw_candidacy(self, election_id: UUID, player_id: str) -> Election:
        election = await self._open(election_id)
        self._candidate(election, player_id)
        election.candidates = [c for c in election.candidates if c.player_id != player_id]
        election.player_votes = {
            voter: choice for voter, choice in election.player_votes.items() if choice != player_id
        }
        await self.store.save_election(election)
        logger.info("Candidacy withdrawn: %s from election %s", player_id, election_id)
        return election

    async def donate(self, election_id: UUID, candidate_id: str, amount: float) -> Candidate:
        if amount <= 0:
            raise ValueError(f"Donation must be positive, got {amount}")
        election = await self._open(election_id)
        candidate = self._candidate(election, candidate_id)
        candidate.funding_raised += amount
        await self.store.save_election(election)
        return candidate

    async def endorse_candidate(
        self, election_id: UUID, candidate_id: str, endorser_id: str
    ) -> Candidate:
        election = await self._open(election_id)
        candidate = self._candidate(election, candidate_id)
        if endorser_id in candidate.endorsements:
            raise InvalidStateError(f"{endorser_id} already endorsed {candidate_id}")
        candidate.endorsements.append(endorser_id)
        await self.store.save_election(election)
        return candidate

    async def cast_player_vote(self, election_id: UUID, voter_id: str, candidate_id: str) -> None:
        election = await self._open(election_id)
        self._candidate(election, candidate_id)
        if voter_id in election.player_votes:
            raise InvalidStateError(f"Player {voter_id} already voted in {election_id}")
        election.player_votes[voter_id] = candidate_id
        await self.store.save_election(election)

    # ── Tally ──────────────────────────────────────────────────

    async def _blocs(self, election: Election) -> list[VotingBloc]:
        cohorts = [c for c in await self.cohorts.list_cohorts(election.province) if c.population > 0]
        if cohorts:
            return [bloc_from_cohort(c) for c in cohorts]
        population = election.province_population or self.default_population
        logger.warning(
            "No cohorts for province %s; using a synthetic bloc of %d",
            election.province, population,
        )
        return [VotingBloc(cohort_id=SYNTHETIC_BLOC_ID, population=population)]

    async def _reputations(
        self, election: Election, blocs: list[VotingBloc]
    ) -> dict[tuple[str, str], float] | None:
        if self.reputation_service is None:
            return None
        reputations = {}
        for candidate in election.candidates:
            for bloc in blocs:
                if bloc.cohort_id == SYNTHETIC_BLOC_ID:
                    continue
                reputations[(candidate.player_id, bloc.cohort_id)] = (
                    await self.reputation_service.get_reputation(candidate.player_id, bloc.cohort_id)
                )
        return reputations

    async def run_election(
        self,
        election_id: UUID,
        turn: int | None = None,
        held_on: date | None = None,
    ) -> Election:
        """
        Tally NPC and player votes and close the election.

        Returns:
            The completed election with results, winner and turnout.
        """
        election = await self._open(election_id)
        blocs = await self._blocs(election)
        population = sum(b.population for b in blocs)

        results = self.simulator.simulate(
            election.candidates, blocs, await self._reputations(election, blocs)
        )
        for candidate_id in election.player_votes.values():
            if candidate_id in results:
                results[candidate_id] += 1

        total = sum(results.values())
        election.results = results
        election.winner_id = max(results, key=results.get) if results else None
        election.turnout = round(total / population * 100, 1) if population else 0.0
        election.province_population = population
        election.status = ElectionStatus.COMPLETED
        election.held_turn = turn
        election.held_on = held_on
        await self.store.save_election(election)

        logger.info(
            "Election %s (%s) completed: winner=%s votes=%d turnout=%.1f%%",
            election.id, election.province, election.winner_id, total, election.turnout,
        )
        return election

    async def run_due_elections(
        self,
        session_id: str,
        turn: int,
        held_on: date | None = None,
    ) -> list[Election]:
        """Run every open election of the session."""
        open_elections = await self.store.find_elections(session_id, ElectionStatus.OPEN)
        return [await self.run_election(e.id, turn, held_on) for e in open_elections]
