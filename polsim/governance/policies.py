"""
Policy Lifecycle — proposal, vote, enactment and supersession.

State machine per policy:
    PROPOSED → ENACTED → SUPERSEDED (terminal)

Categories are either exclusive (at most one enacted policy per session) or
stacking (unlimited). Enacting into an exclusive category retires every
other enacted member in the same write: their numeric effects are moved into
``superseded_*`` shadow fields and pending delayed effects are prorated
(at least half elapsed) or cancelled (less than half elapsed).

An external event may also delete a policy outright; the same effect
stashing applies, but the policy records the event instead of a successor.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from polsim.errors import InvalidStateError
from polsim.locking import KeyedLocks
from polsim.model.schema import (
    DelayedEffect,
    Policy,
    PolicyPosition,
    PolicyStatus,
    VoteChoice,
)
from polsim.storage.base import PolicyStore

logger = logging.getLogger(__name__)

PRORATE_THRESHOLD = 0.5


# ════════════════════════════════════════════════════════════════
# Category configuration
# ════════════════════════════════════════════════════════════════


class CategoryRule(BaseModel):
    exclusive: bool
    description: str = ""


CATEGORY_RULES: dict[str, CategoryRule] = {
    # Taxation: one rate per tax type
    "tax_income": CategoryRule(exclusive=True, description="Income tax"),
    "tax_property": CategoryRule(exclusive=True, description="Property tax"),
    "tax_corporate": CategoryRule(exclusive=True, description="Corporate tax"),
    "tariff": CategoryRule(exclusive=True, description="Import tariffs"),
    "tax_sales": CategoryRule(exclusive=True, description="Sales tax"),
    "immigration": CategoryRule(exclusive=True, description="Immigration framework"),
    # Resource regulation: one per resource
    "resource_timber": CategoryRule(exclusive=True),
    "resource_gold": CategoryRule(exclusive=True),
    "resource_coal": CategoryRule(exclusive=True),
    "resource_whaling": CategoryRule(exclusive=True),
    "land_reform": CategoryRule(exclusive=True, description="Land reform framework"),
    "labor": CategoryRule(exclusive=True, description="Labor law framework"),
    "electoral_reform": CategoryRule(exclusive=True),
    "maori_rights": CategoryRule(exclusive=True, description="Māori rights framework"),
    # Stacking
    "infrastructure": CategoryRule(exclusive=False),
    "education": CategoryRule(exclusive=False),
    "other": CategoryRule(exclusive=False),
}


def is_exclusive(category: str) -> bool:
    """Unknown categories stack."""
    rule = CATEGORY_RULES.get(category)
    return rule is not None and rule.exclusive


def delayed_completion(enacted_turn: int, apply_at_turn: int, current_turn: int) -> float:
    """Fraction of a delayed effect's wait that has elapsed, clamped to [0, 1]."""
    total = apply_at_turn - enacted_turn
    if total <= 0:
        return 1.0
    return max(0.0, min(1.0, (current_turn - enacted_turn) / total))


# ════════════════════════════════════════════════════════════════
# Reports
# ════════════════════════════════════════════════════════════════


class AppliedEffect(BaseModel):
    policy_id: UUID
    title: str
    category: str
    payload: dict[str, float]
    prorated: bool


class ActiveModifier(BaseModel):
    policy_id: UUID
    title: str
    economic_impact: dict[str, float]
    reputation_impact: dict[str, float]
    resource_price_changes: dict[str, float]
    cultural_modifiers: dict[str, float]
    enacted_turn: int | None


class PolicyLink(BaseModel):
    id: UUID
    title: str
    turn: int | None = Field(default=None, description="Turn enacted or superseded")


class SupersessionHistory(BaseModel):
    current: PolicyLink
    status: PolicyStatus
    superseded_by: PolicyLink | None = None
    supersedes: list[PolicyLink] = Field(default_factory=list)
    deleted_by_event: str | None = None
    deletion_reason: str | None = None


# ════════════════════════════════════════════════════════════════
# Policy Lifecycle Manager
# ════════════════════════════════════════════════════════════════


class PolicyLifecycleManager:
    """
    Owns every policy state transition.

    Enactment into an exclusive category is serialized per (session,
    category) so two enactments cannot both observe an empty category.
    """

    def __init__(self, store: PolicyStore, reputation_service: Any = None) -> None:
        """
        Args:
            store: Policy persistence.
            reputation_service: Optional ReputationService; when set, resolving
                a vote applies the policy's impact on its proposer and voters.
        """
        self.store = store
        self.reputation_service = reputation_service
        self._category_locks = KeyedLocks()

    # ── Proposal & vote ────────────────────────────────────────

    async def propose(
        self,
        session_id: str,
        proposer_id: str,
        title: str,
        category: str,
        proposed_turn: int,
        position: PolicyPosition | None = None,
        description: str = "",
        economic_impact: dict[str, float] | None = None,
        reputation_impact: dict[str, float] | None = None,
        resource_price_changes: dict[str, float] | None = None,
        cultural_modifiers: dict[str, float] | None = None,
        delayed_effect: DelayedEffect | None = None,
    ) -> Policy:
        """Record a new proposal. Returns the saved policy."""
        policy = Policy(
            session_id=session_id,
            title=title,
            description=description,
            category=category,
            proposed_by=proposer_id,
            proposed_turn=proposed_turn,
            position=position or PolicyPosition(),
            economic_impact=economic_impact or {},
            reputation_impact=reputation_impact or {},
            resource_price_changes=resource_price_changes or {},
            cultural_modifiers=cultural_modifiers or {},
            delayed_effect=delayed_effect,
        )
        await self.store.save_policy(policy)
        logger.info(
            "Policy proposed: %s [%s] '%s' by %s",
            policy.id, category, title[:80], proposer_id,
        )
        return policy

    async def cast_vote(self, policy_id: UUID, player_id: str, choice: VoteChoice) -> Policy:
        """
        Record one player's vote.

        Raises:
            InvalidStateError: If the vote is already resolved or the player has voted.
        """
        policy = await self.store.get_policy(policy_id)
        if policy.status != PolicyStatus.PROPOSED or policy.passed is not None:
            raise InvalidStateError(f"Policy {policy_id} is no longer open for voting")
        if player_id in policy.votes:
            raise InvalidStateError(f"Player {player_id} has already voted on policy {policy_id}")

        policy.votes[player_id] = choice
        await self.store.save_policy(policy)
        logger.info("Vote cast: policy=%s player=%s choice=%s", policy_id, player_id, choice.value)
        return policy

    async def resolve_vote(self, policy_id: UUID, turn: int) -> Policy:
        """
        Close voting. The policy passes when yes votes outnumber no votes.

        Raises:
            InvalidStateError: If the vote was already resolved.
        """
        policy = await self.store.get_policy(policy_id)
        if policy.passed is not None or policy.status != PolicyStatus.PROPOSED:
            raise InvalidStateError(f"Policy {policy_id} vote already resolved")

        policy.passed = policy.yes_votes > policy.no_votes
        policy.resolved_turn = turn
        await self.store.save_policy(policy)
        logger.info(
            "Policy %s %s (%d yes / %d no)",
            policy_id, "passed" if policy.passed else "failed",
            policy.yes_votes, policy.no_votes,
        )

        if self.reputation_service is not None:
            await self.reputation_service.apply_policy_impacts(policy, turn)
        return policy

    # ── Enactment & supersession ───────────────────────────────

    async def enact(self, policy_id: UUID, current_turn: int) -> Policy:
        """
        Put a passed policy into force.

        In an exclusive category every other enacted policy of the session is
        retired in the same write and linked both ways.

        Args:
            policy_id: The passed policy.
            current_turn: Turn of enactment.

        Returns:
            The enacted policy.

        Raises:
            InvalidStateError: If the policy has not passed or is already enacted.
        """
        policy = await self.store.get_policy(policy_id)
        if policy.status != PolicyStatus.PROPOSED or policy.passed is not True:
            raise InvalidStateError(
                f"Policy {policy_id} cannot be enacted from status {policy.status.value} "
                f"(passed={policy.passed})"
            )

        async with self._category_locks.hold((policy.session_id, policy.category)):
            policy.status = PolicyStatus.ENACTED
            policy.enacted_turn = current_turn

            retired: list[Policy] = []
            if is_exclusive(policy.category):
                incumbents = await self.store.find_policies(
                    policy.session_id, policy.category, PolicyStatus.ENACTED
                )
                for old in incumbents:
                    if old.id == policy.id:
                        continue
                    self._retire(old, current_turn)
                    old.superseded_by = policy.id
                    retired.append(old)
                policy.supersedes = [old.id for old in retired]

            await self.store.save_policies([policy, *retired])

        logger.info(
            "Policy enacted: %s [%s] turn=%d superseding %d",
            policy.id, policy.category, current_turn, len(retired),
        )
        return policy

    async def enact_passed(self, session_id: str, turn: int) -> list[Policy]:
        """Enact every passed, not yet enacted policy of the session, oldest first."""
        pending = [
            p for p in await self.store.find_policies(session_id, status=PolicyStatus.PROPOSED)
            if p.passed is True
        ]
        pending.sort(key=lambda p: (p.resolved_turn or 0, p.proposed_turn))
        return [await self.enact(p.id, turn) for p in pending]

    async def delete_by_event(
        self,
        policy_id: UUID,
        event_id: str,
        reason: str,
        current_turn: int,
    ) -> Policy:
        """
        Remove a policy from force because of an external event.

        Raises:
            InvalidStateError: If the policy is not currently enacted.
        """
        policy = await self.store.get_policy(policy_id)
        if policy.status != PolicyStatus.ENACTED:
            raise InvalidStateError(
                f"Policy {policy_id} is {policy.status.value}, only enacted policies can be deleted"
            )

        self._retire(policy, current_turn)
        policy.deleted_by_event = event_id
        policy.deletion_reason = reason
        await self.store.save_policy(policy)
        logger.info("Policy %s deleted by event %s: %s", policy_id, event_id, reason)
        return policy

    def _retire(self, policy: Policy, current_turn: int) -> None:
        """Move a policy out of force, stashing its effects in the shadow fields."""
        policy.status = PolicyStatus.SUPERSEDED
        policy.superseded_at = current_turn

        policy.superseded_economic_impact = policy.economic_impact
        policy.superseded_reputation_impact = policy.reputation_impact
        policy.superseded_resource_price_changes = policy.resource_price_changes
        policy.superseded_cultural_modifiers = policy.cultural_modifiers
        policy.economic_impact = {}
        policy.reputation_impact = {}
        policy.resource_price_changes = {}
        policy.cultural_modifiers = {}

        effect = policy.delayed_effect
        if effect is None or effect.applied or effect.apply_at_turn <= current_turn:
            return

        completion = delayed_completion(policy.enacted_turn, effect.apply_at_turn, current_turn)
        if completion >= PRORATE_THRESHOLD:
            effect.payload = {k: v * completion for k, v in effect.payload.items()}
            effect.prorated = True
            effect.completion_percentage = completion
            logger.info("Delayed effect of %s prorated at %.0f%%", policy.id, completion * 100)
        else:
            policy.superseded_delayed_effect = effect
            policy.delayed_effect = None
            logger.info("Delayed effect of %s cancelled at %.0f%%", policy.id, completion * 100)

    # ── Delayed effects ────────────────────────────────────────

    async def apply_due_delayed_effects(self, session_id: str, turn: int) -> list[AppliedEffect]:
        """
        Mark every delayed effect whose turn has arrived as applied.

        Prorated effects of retired policies still land. Returns the payloads
        for the caller to apply.
        """
        applied: list[AppliedEffect] = []
        for policy in await self.store.find_policies(session_id):
            effect = policy.delayed_effect
            if effect is None or effect.applied or effect.apply_at_turn > turn:
                continue
            # Never in force: nothing to land
            if policy.enacted_turn is None:
                continue
            effect.applied = True
            await self.store.save_policy(policy)
            applied.append(
                AppliedEffect(
                    policy_id=policy.id,
                    title=policy.title,
                    category=policy.category,
                    payload=effect.payload,
                    prorated=effect.prorated,
                )
            )
        if applied:
            logger.info("Applied %d delayed effects for session %s", len(applied), session_id)
        return applied

    # ── Queries ────────────────────────────────────────────────

    async def active_modifiers(self, session_id: str) -> dict[str, list[ActiveModifier]]:
        """Effects of every enacted policy, grouped by category."""
        by_category: dict[str, list[ActiveModifier]] = defaultdict(list)
        for policy in await self.store.find_policies(session_id, status=PolicyStatus.ENACTED):
            by_category[policy.category].append(
                ActiveModifier(
                    policy_id=policy.id,
                    title=policy.title,
                    economic_impact=policy.economic_impact,
                    reputation_impact=policy.reputation_impact,
                    resource_price_changes=policy.resource_price_changes,
                    cultural_modifiers=policy.cultural_modifiers,
                    enacted_turn=policy.enacted_turn,
                )
            )
        return dict(by_category)

    async def supersession_history(self, policy_id: UUID) -> SupersessionHistory:
        """What replaced a policy and what it replaced."""
        policy = await self.store.get_policy(policy_id)
        history = SupersessionHistory(
            current=PolicyLink(id=policy.id, title=policy.title, turn=policy.enacted_turn),
            status=policy.status,
            deleted_by_event=policy.deleted_by_event,
            deletion_reason=policy.deletion_reason,
        )
        if policy.superseded_by is not None:
            successor = await self.store.get_policy(policy.superseded_by)
            history.superseded_by = PolicyLink(
                id=successor.id, title=successor.title, turn=successor.enacted_turn
            )
        for old_id in policy.supersedes:
            old = await self.store.get_policy(old_id)
            history.supersedes.append(PolicyLink(id=old.id, title=old.title, turn=old.superseded_at))
        return history
