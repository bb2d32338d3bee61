"""
Reputation Service — applies approval deltas to (player, cohort) records.

Every write goes through ``apply_reputation_change``: load-or-create the
record, clamp, append history, trim to the history limit, save. Updates to
one record are serialized by a per-record ``asyncio.Lock`` so two deltas
arriving in the same turn (decay and a campaign completion, say) are applied
one after the other instead of clobbering each other.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict

from pydantic import BaseModel, Field

from polsim.config import settings
from polsim.errors import InvalidStateError
from polsim.locking import KeyedLocks
from polsim.model.schema import (
    REPUTATION_MAX,
    REPUTATION_MIN,
    ApprovalEntry,
    DemographicCohort,
    Endorsement,
    NewsOutlet,
    NewsSentiment,
    Policy,
    PolicyPosition,
    PolicyRole,
    ReputationRecord,
    ReputationSource,
    VoteChoice,
    clamp,
    utcnow,
)
from polsim.reputation.calculation import (
    ROLE_SOURCES,
    calculate_cube_match,
    calculate_decay,
    calculate_endorsement_transfer,
    calculate_issue_match,
    calculate_news_impact,
    calculate_policy_impact,
    reason_text,
)
from polsim.storage.base import CohortStore, ReputationStore

logger = logging.getLogger(__name__)


class PolicyImpactSummary(BaseModel):
    """How many (player, cohort) changes a policy resolution produced, per role."""

    proposer_impacts: int = 0
    yes_voter_impacts: int = 0
    no_voter_impacts: int = 0


class ImpactPrediction(BaseModel):
    """Preview of one cohort's reaction to a policy. Nothing is written."""

    cohort_id: str
    occupation: str
    social_class: str
    province: str
    population: int
    predicted_impact: float
    current_approval: float
    new_approval: float


class ProvinceReputation(BaseModel):
    province: str
    approval: float = Field(description="Population-weighted mean approval")
    population: int
    cohorts: int


def policy_delta(
    role: PolicyRole,
    position: PolicyPosition,
    cohort: DemographicCohort,
) -> float:
    """Score a policy against one cohort's default position for a role."""
    if role == PolicyRole.ABSTAIN:
        return 0.0
    cohort_position = cohort.default_position
    issue_match = calculate_issue_match(None, cohort_position, position.issue_positions)
    cube_match = calculate_cube_match(position.cube, cohort_position.cube)
    return calculate_policy_impact(role, issue_match, cube_match)


class ReputationService:
    """
    Applies and queries player reputation with demographic cohorts.

    Usage:
        service = ReputationService(store)
        await service.apply_reputation_change(
            "player-1", "cohort-7", 3.5, ReputationSource.CAMPAIGN, "camp-1", turn=12
        )
    """

    def __init__(
        self,
        store: ReputationStore,
        cohorts: CohortStore | None = None,
        rng: random.Random | None = None,
        decay_rate: float | None = None,
        baseline: float | None = None,
        organic_default_approval: float | None = None,
        session_default_approval: float | None = None,
        history_limit: int | None = None,
        prediction_limit: int | None = None,
    ) -> None:
        """
        Args:
            store: Where reputation records live.
            cohorts: Cohort lookup, required by every per-cohort operation.
                Defaults to ``store`` when it also implements the cohort contract.
            rng: Random source for endorsement and news draws.
        """
        self.store = store
        if cohorts is None and isinstance(store, CohortStore):
            cohorts = store
        self.cohorts = cohorts
        self.rng = rng or random.Random()
        self.decay_rate = settings.reputation_decay_rate if decay_rate is None else decay_rate
        self.baseline = settings.reputation_baseline if baseline is None else baseline
        self.organic_default_approval = (
            settings.organic_default_approval
            if organic_default_approval is None
            else organic_default_approval
        )
        self.session_default_approval = (
            settings.session_default_approval
            if session_default_approval is None
            else session_default_approval
        )
        self.history_limit = (
            settings.reputation_history_limit if history_limit is None else history_limit
        )
        self.prediction_limit = (
            settings.prediction_preview_limit if prediction_limit is None else prediction_limit
        )
        self._locks = KeyedLocks()

    def _lock_for(self, player_id: str, cohort_id: str):
        return self._locks.hold((player_id, cohort_id))

    def _require_cohorts(self) -> CohortStore:
        if self.cohorts is None:
            raise InvalidStateError("ReputationService has no cohort store configured")
        return self.cohorts

    # ════════════════════════════════════════════════════════════
    # Writes
    # ════════════════════════════════════════════════════════════

    async def _load(
        self, player_id: str, cohort_id: str, session_id: str | None
    ) -> ReputationRecord:
        record = await self.store.get_or_create_reputation(
            player_id, cohort_id, session_id, self.organic_default_approval
        )
        if record.session_id is None and session_id is not None:
            record.session_id = session_id
        return record

    async def _apply(
        self,
        record: ReputationRecord,
        delta: float,
        source: ReputationSource,
        source_id: str | None,
        turn: int,
    ) -> ReputationRecord:
        old = record.approval
        record.approval = clamp(old + delta, REPUTATION_MIN, REPUTATION_MAX)
        record.history.append(
            ApprovalEntry(
                turn=turn,
                approval=record.approval,
                change=record.approval - old,
                reason=reason_text(source, delta),
                source=source,
                source_id=source_id,
            )
        )
        record.trim_history(self.history_limit)
        record.turn_updated = turn
        record.last_updated = utcnow()
        await self.store.save_reputation(record)
        logger.debug(
            "Reputation %s/%s: %.2f -> %.2f (%s)",
            record.player_id, record.cohort_id, old, record.approval, source.value,
        )
        return record

    async def apply_reputation_change(
        self,
        player_id: str,
        cohort_id: str,
        delta: float,
        source: ReputationSource,
        source_id: str | None = None,
        turn: int = 0,
        session_id: str | None = None,
    ) -> ReputationRecord:
        """
        Apply a signed delta to a player's approval with one cohort.

        The record is created at the organic default (40) if it does not
        exist. The stored approval is clamped to [0, 100] and the history is
        trimmed to its most recent entries.

        Args:
            player_id: Player whose reputation changes.
            cohort_id: Cohort whose opinion changes.
            delta: Unclamped change.
            source: What caused it.
            source_id: Identifier of the causing policy, campaign, article...
            turn: Turn number the change belongs to.
            session_id: Session to associate a newly created record with.

        Returns:
            The saved record.
        """
        async with self._lock_for(player_id, cohort_id):
            record = await self._load(player_id, cohort_id, session_id)
            return await self._apply(record, delta, source, source_id, turn)

    async def apply_turn_decay(
        self,
        record: ReputationRecord,
        turn: int,
        decay_rate: float | None = None,
    ) -> ReputationRecord | None:
        """
        Pull one record toward the baseline. Returns None when the pull is negligible.

        The decay is computed from the freshly loaded approval, not from the
        possibly stale ``record`` passed in.
        """
        rate = self.decay_rate if decay_rate is None else decay_rate
        async with self._lock_for(record.player_id, record.cohort_id):
            current = await self._load(record.player_id, record.cohort_id, record.session_id)
            decay = calculate_decay(current.approval, rate, self.baseline)
            if decay is None:
                return None
            return await self._apply(
                current, -decay, ReputationSource.TURN_DECAY, f"turn-{turn}", turn
            )

    async def decay_session(self, session_id: str, turn: int) -> int:
        """Decay every record of a session. Returns the number of records changed."""
        changed = 0
        for record in await self.store.list_reputations(session_id=session_id):
            if await self.apply_turn_decay(record, turn) is not None:
                changed += 1
        logger.info("Decayed %d reputation records for session %s", changed, session_id)
        return changed

    async def compact_history(self, session_id: str) -> int:
        """Trim every record of a session to the history limit. Returns records trimmed."""
        trimmed = 0
        for stale in await self.store.list_reputations(session_id=session_id):
            async with self._lock_for(stale.player_id, stale.cohort_id):
                record = await self.store.find_reputation(stale.player_id, stale.cohort_id)
                if record is None or not record.trim_history(self.history_limit):
                    continue
                await self.store.save_reputation(record)
                trimmed += 1
        if trimmed:
            logger.info("Compacted history of %d records for session %s", trimmed, session_id)
        return trimmed

    async def initialize_player(
        self,
        player_id: str,
        session_id: str,
        approval: float | None = None,
    ) -> int:
        """
        Seed a player's record with every cohort at the session default (neutral 50).

        Existing records are left untouched. Returns the number created.
        """
        start = self.session_default_approval if approval is None else approval
        created = 0
        for cohort in await self._require_cohorts().list_cohorts():
            async with self._lock_for(player_id, cohort.id):
                if await self.store.find_reputation(player_id, cohort.id) is not None:
                    continue
                record = ReputationRecord(
                    player_id=player_id,
                    cohort_id=cohort.id,
                    session_id=session_id,
                    approval=start,
                )
                await self.store.save_reputation(record)
                created += 1
        logger.info("Initialized %d reputation records for player %s", created, player_id)
        return created

    async def apply_policy_impacts(self, policy: Policy, turn: int) -> PolicyImpactSummary:
        """
        Apply a resolved policy's effect on its proposer and voters, per cohort.

        Proposer, yes and no voters are scored against every cohort's default
        position; abstainers are unaffected.
        """
        summary = PolicyImpactSummary()
        yes_voters = policy.voters(VoteChoice.YES)
        no_voters = policy.voters(VoteChoice.NO)
        source_id = str(policy.id)

        for cohort in await self._require_cohorts().list_cohorts():
            targets = [(PolicyRole.PROPOSER, policy.proposed_by)] if policy.proposed_by else []
            targets += [(PolicyRole.YES, v) for v in yes_voters]
            targets += [(PolicyRole.NO, v) for v in no_voters]

            for role, player_id in targets:
                delta = policy_delta(role, policy.position, cohort)
                await self.apply_reputation_change(
                    player_id, cohort.id, delta, ROLE_SOURCES[role], source_id,
                    turn, policy.session_id,
                )
                if role == PolicyRole.PROPOSER:
                    summary.proposer_impacts += 1
                elif role == PolicyRole.YES:
                    summary.yes_voter_impacts += 1
                else:
                    summary.no_voter_impacts += 1

        logger.info(
            "Policy %s impacts applied: %d proposer, %d yes, %d no",
            policy.id, summary.proposer_impacts, summary.yes_voter_impacts,
            summary.no_voter_impacts,
        )
        return summary

    async def apply_endorsement(
        self,
        endorser_id: str,
        endorsed_id: str,
        session_id: str,
        turn: int,
    ) -> Endorsement:
        """
        Transfer part of the endorser's standing to the endorsed player, cohort by cohort.

        Each cohort draws from a band set by the endorser's own approval with
        it; zero draws are not recorded.

        Raises:
            InvalidStateError: If a player tries to endorse themselves.
        """
        if endorser_id == endorsed_id:
            raise InvalidStateError(f"Player {endorser_id} cannot endorse themselves")

        endorsement = Endorsement(
            session_id=session_id,
            endorser_id=endorser_id,
            endorsed_id=endorsed_id,
            turn=turn,
        )
        for cohort in await self._require_cohorts().list_cohorts():
            endorser_approval = await self.get_reputation(endorser_id, cohort.id)
            transfer = calculate_endorsement_transfer(endorser_approval, self.rng)
            if transfer == 0:
                continue
            await self.apply_reputation_change(
                endorsed_id, cohort.id, transfer, ReputationSource.ENDORSEMENT,
                str(endorsement.id), turn, session_id,
            )
            endorsement.reputation_changes[cohort.id] = transfer

        await self.store.save_endorsement(endorsement)
        logger.info(
            "Endorsement %s -> %s: %d cohorts, net %+d",
            endorser_id, endorsed_id, len(endorsement.reputation_changes),
            endorsement.net_change,
        )
        return endorsement

    async def apply_news_impact(
        self,
        player_id: str,
        cohort_id: str,
        sentiment: NewsSentiment,
        outlet: NewsOutlet,
        turn: int,
        article_id: str,
        session_id: str | None = None,
    ) -> float:
        """Apply one article's effect on one cohort. Returns the delta (0 for neutral)."""
        cohort = await self._require_cohorts().get_cohort(cohort_id)
        delta = calculate_news_impact(
            sentiment, outlet, cohort.default_position.cube.social, self.rng
        )
        if delta == 0:
            return 0.0
        await self.apply_reputation_change(
            player_id, cohort_id, delta, ReputationSource.NEWS_ARTICLE, article_id,
            turn, session_id,
        )
        return delta

    # ════════════════════════════════════════════════════════════
    # Reads
    # ════════════════════════════════════════════════════════════

    async def get_reputation(self, player_id: str, cohort_id: str) -> float:
        """Current approval, or the organic default when no record exists yet."""
        record = await self.store.find_reputation(player_id, cohort_id)
        return record.approval if record else self.organic_default_approval

    async def predict_policy_impacts(
        self,
        player_id: str,
        position: PolicyPosition,
        role: PolicyRole,
        limit: int | None = None,
    ) -> list[ImpactPrediction]:
        """Preview a policy's effect on the largest voting cohorts without writing."""
        cohorts = await self._require_cohorts().list_voting_cohorts()
        predictions = []
        for cohort in cohorts[: limit or self.prediction_limit]:
            current = await self.get_reputation(player_id, cohort.id)
            impact = policy_delta(role, position, cohort)
            predictions.append(
                ImpactPrediction(
                    cohort_id=cohort.id,
                    occupation=cohort.economic.occupation,
                    social_class=cohort.economic.social_class.value,
                    province=cohort.locational.province,
                    population=cohort.population,
                    predicted_impact=impact,
                    current_approval=current,
                    new_approval=clamp(current + impact, REPUTATION_MIN, REPUTATION_MAX),
                )
            )
        return predictions

    async def reputation_by_province(self, player_id: str) -> list[ProvinceReputation]:
        """Population-weighted approval per province, provinces sorted by name."""
        weighted: dict[str, float] = defaultdict(float)
        population: dict[str, int] = defaultdict(int)
        counts: dict[str, int] = defaultdict(int)

        for cohort in await self._require_cohorts().list_cohorts():
            province = cohort.locational.province
            approval = await self.get_reputation(player_id, cohort.id)
            weighted[province] += approval * cohort.population
            population[province] += cohort.population
            counts[province] += 1

        return [
            ProvinceReputation(
                province=province,
                approval=weighted[province] / population[province] if population[province] else 0.0,
                population=population[province],
                cohorts=counts[province],
            )
            for province in sorted(counts)
        ]
