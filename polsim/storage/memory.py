"""In-memory store. Used by tests and single-process games."""

from __future__ import annotations

from uuid import UUID

from polsim.errors import NotFoundError
from polsim.model.schema import (
    Campaign,
    CampaignStatus,
    DemographicCohort,
    Election,
    ElectionStatus,
    Endorsement,
    GameSession,
    Policy,
    PolicyStatus,
    ReputationRecord,
    SessionStatus,
)
from polsim.storage.base import Store


class MemoryStore(Store):
    """Dict-backed store. Models are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self.cohorts: dict[str, DemographicCohort] = {}
        self.reputations: dict[tuple[str, str], ReputationRecord] = {}
        self.endorsements: dict[UUID, Endorsement] = {}
        self.policies: dict[UUID, Policy] = {}
        self.campaigns: dict[UUID, Campaign] = {}
        self.elections: dict[UUID, Election] = {}
        self.sessions: dict[str, GameSession] = {}

    # ── Cohorts ────────────────────────────────────────────────

    async def get_cohort(self, cohort_id: str) -> DemographicCohort:
        cohort = self.cohorts.get(cohort_id)
        if cohort is None:
            raise NotFoundError("Cohort", cohort_id)
        return cohort.model_copy(deep=True)

    async def list_cohorts(self, province: str | None = None) -> list[DemographicCohort]:
        return [
            c.model_copy(deep=True)
            for c in self.cohorts.values()
            if province is None or c.locational.province == province
        ]

    async def list_voting_cohorts(self) -> list[DemographicCohort]:
        voting = [c for c in self.cohorts.values() if c.can_vote]
        voting.sort(key=lambda c: c.population, reverse=True)
        return [c.model_copy(deep=True) for c in voting]

    async def save_cohort(self, cohort: DemographicCohort) -> None:
        self.cohorts[cohort.id] = cohort.model_copy(deep=True)

    # ── Reputation ─────────────────────────────────────────────

    async def find_reputation(self, player_id: str, cohort_id: str) -> ReputationRecord | None:
        record = self.reputations.get((player_id, cohort_id))
        return record.model_copy(deep=True) if record else None

    async def save_reputation(self, record: ReputationRecord) -> None:
        self.reputations[(record.player_id, record.cohort_id)] = record.model_copy(deep=True)

    async def list_reputations(
        self,
        session_id: str | None = None,
        player_id: str | None = None,
    ) -> list[ReputationRecord]:
        return [
            r.model_copy(deep=True)
            for r in self.reputations.values()
            if (session_id is None or r.session_id == session_id)
            and (player_id is None or r.player_id == player_id)
        ]

    async def save_endorsement(self, endorsement: Endorsement) -> None:
        self.endorsements[endorsement.id] = endorsement.model_copy(deep=True)

    # ── Policies ───────────────────────────────────────────────

    async def get_policy(self, policy_id: UUID) -> Policy:
        policy = self.policies.get(policy_id)
        if policy is None:
            raise NotFoundError("Policy", policy_id)
        return policy.model_copy(deep=True)

    async def find_policies(
        self,
        session_id: str,
        category: str | None = None,
        status: PolicyStatus | None = None,
    ) -> list[Policy]:
        return [
            p.model_copy(deep=True)
            for p in self.policies.values()
            if p.session_id == session_id
            and (category is None or p.category == category)
            and (status is None or p.status == status)
        ]

    async def save_policy(self, policy: Policy) -> None:
        self.policies[policy.id] = policy.model_copy(deep=True)

    async def save_policies(self, policies: list[Policy]) -> None:
        staged = {p.id: p.model_copy(deep=True) for p in policies}
        self.policies.update(staged)

    # ── Campaigns ──────────────────────────────────────────────

    async def get_campaign(self, campaign_id: UUID) -> Campaign:
        campaign = self.campaigns.get(campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id)
        return campaign.model_copy(deep=True)

    async def find_campaigns(
        self,
        session_id: str,
        status: CampaignStatus | None = None,
        player_id: str | None = None,
        cohort_id: str | None = None,
    ) -> list[Campaign]:
        return [
            c.model_copy(deep=True)
            for c in self.campaigns.values()
            if c.session_id == session_id
            and (status is None or c.status == status)
            and (player_id is None or c.player_id == player_id)
            and (cohort_id is None or c.cohort_id == cohort_id)
        ]

    async def save_campaign(self, campaign: Campaign) -> None:
        self.campaigns[campaign.id] = campaign.model_copy(deep=True)

    # ── Elections ──────────────────────────────────────────────

    async def get_election(self, election_id: UUID) -> Election:
        election = self.elections.get(election_id)
        if election is None:
            raise NotFoundError("Election", election_id)
        return election.model_copy(deep=True)

    async def find_elections(
        self,
        session_id: str,
        status: ElectionStatus | None = None,
    ) -> list[Election]:
        return [
            e.model_copy(deep=True)
            for e in self.elections.values()
            if e.session_id == session_id and (status is None or e.status == status)
        ]

    async def save_election(self, election: Election) -> None:
        self.elections[election.id] = election.model_copy(deep=True)

    # ── Sessions ───────────────────────────────────────────────

    async def get_session(self, session_id: str) -> GameSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session", session_id)
        return session.model_copy(deep=True)

    async def list_sessions(self, status: SessionStatus | None = None) -> list[GameSession]:
        return [
            s.model_copy(deep=True)
            for s in self.sessions.values()
            if status is None or s.status == status
        ]

    async def save_session(self, session: GameSession) -> None:
        self.sessions[session.id] = session.model_copy(deep=True)
