"""
Store contracts — the logical read/write operations the engine needs.

Any durable keyed store will do. Every method is a coroutine because it is
the engine's only suspension point. Stores hand out copies: mutating a
returned model never changes stored state until it is saved.
"""

from __future__ import annotations

import abc
from uuid import UUID

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
    default_record,
)


class CohortStore(abc.ABC):
    @abc.abstractmethod
    async def get_cohort(self, cohort_id: str) -> DemographicCohort:
        """Raises NotFoundError when the cohort does not exist."""

    @abc.abstractmethod
    async def list_cohorts(self, province: str | None = None) -> list[DemographicCohort]:
        """All cohorts, or the cohorts of one province."""

    @abc.abstractmethod
    async def list_voting_cohorts(self) -> list[DemographicCohort]:
        """Voting-eligible cohorts ordered by population, largest first."""

    @abc.abstractmethod
    async def save_cohort(self, cohort: DemographicCohort) -> None: ...


class ReputationStore(abc.ABC):
    @abc.abstractmethod
    async def find_reputation(self, player_id: str, cohort_id: str) -> ReputationRecord | None: ...

    @abc.abstractmethod
    async def save_reputation(self, record: ReputationRecord) -> None:
        """Upsert the full record, history included."""

    @abc.abstractmethod
    async def list_reputations(
        self,
        session_id: str | None = None,
        player_id: str | None = None,
    ) -> list[ReputationRecord]: ...

    @abc.abstractmethod
    async def save_endorsement(self, endorsement: Endorsement) -> None: ...

    async def get_or_create_reputation(
        self,
        player_id: str,
        cohort_id: str,
        session_id: str | None = None,
        default_approval: float = 40.0,
    ) -> ReputationRecord:
        """
        Return the stored record, or a default-initialized one when absent.

        The default is not persisted until the caller saves it.
        """
        record = await self.find_reputation(player_id, cohort_id)
        if record is None:
            record = default_record(player_id, cohort_id, session_id, default_approval)
        return record


class PolicyStore(abc.ABC):
    @abc.abstractmethod
    async def get_policy(self, policy_id: UUID) -> Policy:
        """Raises NotFoundError when the policy does not exist."""

    @abc.abstractmethod
    async def find_policies(
        self,
        session_id: str,
        category: str | None = None,
        status: PolicyStatus | None = None,
    ) -> list[Policy]: ...

    @abc.abstractmethod
    async def save_policy(self, policy: Policy) -> None: ...

    @abc.abstractmethod
    async def save_policies(self, policies: list[Policy]) -> None:
        """Persist several policies as one unit: all or none."""


class CampaignStore(abc.ABC):
    @abc.abstractmethod
    async def get_campaign(self, campaign_id: UUID) -> Campaign: ...

    @abc.abstractmethod
    async def find_campaigns(
        self,
        session_id: str,
        status: CampaignStatus | None = None,
        player_id: str | None = None,
        cohort_id: str | None = None,
    ) -> list[Campaign]: ...

    @abc.abstractmethod
    async def save_campaign(self, campaign: Campaign) -> None: ...


class ElectionStore(abc.ABC):
    @abc.abstractmethod
    async def get_election(self, election_id: UUID) -> Election: ...

    @abc.abstractmethod
    async def find_elections(
        self,
        session_id: str,
        status: ElectionStatus | None = None,
    ) -> list[Election]: ...

    @abc.abstractmethod
    async def save_election(self, election: Election) -> None: ...


class SessionStore(abc.ABC):
    @abc.abstractmethod
    async def get_session(self, session_id: str) -> GameSession: ...

    @abc.abstractmethod
    async def list_sessions(self, status: SessionStatus | None = None) -> list[GameSession]: ...

    @abc.abstractmethod
    async def save_session(self, session: GameSession) -> None: ...


class Store(CohortStore, ReputationStore, PolicyStore, CampaignStore, ElectionStore, SessionStore):
    """A single backend implementing every contract."""
    pass
