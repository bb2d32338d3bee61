"""
SQL Store — durable game state over a SQLAlchemy engine.

Implements every store contract against the tables in
``polsim.storage.models``. Writes are upserts (``Session.merge``); models
round-trip through their JSON documents, so a returned model is always a
fresh copy.

Usage:
    store = SqlStore(settings.database_url)
    store.initialize()  # Create tables
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

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
from polsim.storage.models import (
    Base,
    CampaignDB,
    CohortDB,
    ElectionDB,
    EndorsementDB,
    GameSessionDB,
    PolicyDB,
    ReputationDB,
)

logger = logging.getLogger(__name__)


def _document(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


class SqlStore(Store):
    """Store backed by any SQLAlchemy-supported database."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        """
        Args:
            database_url: SQLAlchemy URL (sync driver), e.g. ``sqlite:///polsim.db``.
            echo: Log emitted SQL.
        """
        self.engine = create_engine(database_url, echo=echo)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def initialize(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("SQL store initialized: %s", self.engine.url.render_as_string(hide_password=True))

    def _get(self, row_type: type, key: Any, kind: str) -> Any:
        with self.SessionLocal() as session:
            row = session.get(row_type, key)
            if row is None:
                raise NotFoundError(kind, key)
            return row.document

    def _documents(self, stmt) -> list[dict[str, Any]]:
        with self.SessionLocal() as session:
            return [row.document for row in session.execute(stmt).scalars()]

    def _merge(self, *rows: Base) -> None:
        with self.SessionLocal() as session:
            for row in rows:
                session.merge(row)
            session.commit()

    # ════════════════════════════════════════════════════════════
    # Cohorts
    # ════════════════════════════════════════════════════════════

    async def get_cohort(self, cohort_id: str) -> DemographicCohort:
        return DemographicCohort.model_validate(self._get(CohortDB, cohort_id, "Cohort"))

    async def list_cohorts(self, province: str | None = None) -> list[DemographicCohort]:
        stmt = select(CohortDB)
        if province is not None:
            stmt = stmt.where(CohortDB.province == province)
        return [DemographicCohort.model_validate(d) for d in self._documents(stmt)]

    async def list_voting_cohorts(self) -> list[DemographicCohort]:
        stmt = (
            select(CohortDB)
            .where(CohortDB.can_vote.is_(True))
            .order_by(CohortDB.population.desc())
        )
        return [DemographicCohort.model_validate(d) for d in self._documents(stmt)]

    async def save_cohort(self, cohort: DemographicCohort) -> None:
        self._merge(
            CohortDB(
                id=cohort.id,
                province=cohort.locational.province,
                can_vote=cohort.can_vote,
                population=cohort.population,
                document=_document(cohort),
            )
        )

    # ════════════════════════════════════════════════════════════
    # Reputation
    # ════════════════════════════════════════════════════════════

    async def find_reputation(self, player_id: str, cohort_id: str) -> ReputationRecord | None:
        with self.SessionLocal() as session:
            row = session.get(ReputationDB, (player_id, cohort_id))
            return ReputationRecord.model_validate(row.document) if row else None

    async def save_reputation(self, record: ReputationRecord) -> None:
        self._merge(
            ReputationDB(
                player_id=record.player_id,
                cohort_id=record.cohort_id,
                session_id=record.session_id,
                approval=record.approval,
                document=_document(record),
                updated_at=record.last_updated,
            )
        )

    async def list_reputations(
        self,
        session_id: str | None = None,
        player_id: str | None = None,
    ) -> list[ReputationRecord]:
        stmt = select(ReputationDB)
        if session_id is not None:
            stmt = stmt.where(ReputationDB.session_id == session_id)
        if player_id is not None:
            stmt = stmt.where(ReputationDB.player_id == player_id)
        return [ReputationRecord.model_validate(d) for d in self._documents(stmt)]

    async def save_endorsement(self, endorsement: Endorsement) -> None:
        self._merge(
            EndorsementDB(
                id=endorsement.id,
                session_id=endorsement.session_id,
                endorser_id=endorsement.endorser_id,
                endorsed_id=endorsement.endorsed_id,
                turn=endorsement.turn,
                document=_document(endorsement),
            )
        )

    # ════════════════════════════════════════════════════════════
    # Policies
    # ════════════════════════════════════════════════════════════

    @staticmethod
    def _policy_row(policy: Policy) -> PolicyDB:
        return PolicyDB(
            id=policy.id,
            session_id=policy.session_id,
            category=policy.category,
            status=policy.status.value,
            document=_document(policy),
        )

    async def get_policy(self, policy_id: UUID) -> Policy:
        return Policy.model_validate(self._get(PolicyDB, policy_id, "Policy"))

    async def find_policies(
        self,
        session_id: str,
        category: str | None = None,
        status: PolicyStatus | None = None,
    ) -> list[Policy]:
        stmt = select(PolicyDB).where(PolicyDB.session_id == session_id)
        if category is not None:
            stmt = stmt.where(PolicyDB.category == category)
        if status is not None:
            stmt = stmt.where(PolicyDB.status == status.value)
        return [Policy.model_validate(d) for d in self._documents(stmt)]

    async def save_policy(self, policy: Policy) -> None:
        self._merge(self._policy_row(policy))

    async def save_policies(self, policies: list[Policy]) -> None:
        # One session, one commit: a failure rolls back every row.
        self._merge(*(self._policy_row(p) for p in policies))

    # ════════════════════════════════════════════════════════════
    # Campaigns
    # ════════════════════════════════════════════════════════════

    async def get_campaign(self, campaign_id: UUID) -> Campaign:
        return Campaign.model_validate(self._get(CampaignDB, campaign_id, "Campaign"))

    async def find_campaigns(
        self,
        session_id: str,
        status: CampaignStatus | None = None,
        player_id: str | None = None,
        cohort_id: str | None = None,
    ) -> list[Campaign]:
        stmt = select(CampaignDB).where(CampaignDB.session_id == session_id)
        if status is not None:
            stmt = stmt.where(CampaignDB.status == status.value)
        if player_id is not None:
            stmt = stmt.where(CampaignDB.player_id == player_id)
        if cohort_id is not None:
            stmt = stmt.where(CampaignDB.cohort_id == cohort_id)
        return [Campaign.model_validate(d) for d in self._documents(stmt)]

    async def save_campaign(self, campaign: Campaign) -> None:
        self._merge(
            CampaignDB(
                id=campaign.id,
                session_id=campaign.session_id,
                player_id=campaign.player_id,
                cohort_id=campaign.cohort_id,
                status=campaign.status.value,
                document=_document(campaign),
            )
        )

    # ════════════════════════════════════════════════════════════
    # Elections
    # ════════════════════════════════════════════════════════════

    async def get_election(self, election_id: UUID) -> Election:
        return Election.model_validate(self._get(ElectionDB, election_id, "Election"))

    async def find_elections(
        self,
        session_id: str,
        status: ElectionStatus | None = None,
    ) -> list[Election]:
        stmt = select(ElectionDB).where(ElectionDB.session_id == session_id)
        if status is not None:
            stmt = stmt.where(ElectionDB.status == status.value)
        return [Election.model_validate(d) for d in self._documents(stmt)]

    async def save_election(self, election: Election) -> None:
        self._merge(
            ElectionDB(
                id=election.id,
                session_id=election.session_id,
                province=election.province,
                status=election.status.value,
                document=_document(election),
            )
        )

    # ════════════════════════════════════════════════════════════
    # Sessions
    # ════════════════════════════════════════════════════════════

    async def get_session(self, session_id: str) -> GameSession:
        return GameSession.model_validate(self._get(GameSessionDB, session_id, "Session"))

    async def list_sessions(self, status: SessionStatus | None = None) -> list[GameSession]:
        stmt = select(GameSessionDB)
        if status is not None:
            stmt = stmt.where(GameSessionDB.status == status.value)
        return [GameSession.model_validate(d) for d in self._documents(stmt)]

    async def save_session(self, session: GameSession) -> None:
        self._merge(
            GameSessionDB(
                id=session.id,
                status=session.status.value,
                document=_document(session),
            )
        )
