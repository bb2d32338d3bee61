"""
Campaigns — a player works one cohort for several turns and is paid once.

Lifecycle:
    ACTIVE → COMPLETED   boost applied exactly once, on end_turn
    ACTIVE → CANCELLED   no boost

A player may run at most one active campaign per cohort.
"""

from __future__ import annotations

import logging
import random
from uuid import UUID

from polsim.config import settings
from polsim.errors import InvalidStateError
from polsim.model.schema import (
    Campaign,
    CampaignStatus,
    DemographicCohort,
    ReputationSource,
)
from polsim.reputation.calculation import calculate_campaign_boost
from polsim.reputation.service import ReputationService
from polsim.storage.base import CampaignStore, CohortStore

logger = logging.getLogger(__name__)


class CampaignManager:
    """Starts, cancels and completes campaigns."""

    def __init__(
        self,
        store: CampaignStore,
        cohorts: CohortStore,
        reputation_service: ReputationService,
        rng: random.Random | None = None,
        default_duration: int | None = None,
    ) -> None:
        self.store = store
        self.cohorts = cohorts
        self.reputation_service = reputation_service
        self.rng = rng or random.Random()
        self.default_duration = (
            settings.campaign_duration_turns if default_duration is None else default_duration
        )

    async def start_campaign(
        self,
        session_id: str,
        player_id: str,
        cohort_id: str,
        start_turn: int,
        duration: int | None = None,
        boost: int | None = None,
    ) -> Campaign:
        """
        Start a campaign toward one cohort.

        Args:
            session_id: Session the campaign runs in.
            player_id: Campaigning player.
            cohort_id: Target cohort; must exist.
            start_turn: Turn the campaign begins.
            duration: Turns until payout; defaults to the configured length.
            boost: Flat approval boost; rolled when omitted.

        Returns:
            The saved campaign.

        Raises:
            NotFoundError: If the cohort does not exist.
            InvalidStateError: If the player already campaigns toward this cohort.
        """
        await self.cohorts.get_cohort(cohort_id)

        existing = await self.store.find_campaigns(
            session_id, CampaignStatus.ACTIVE, player_id=player_id, cohort_id=cohort_id
        )
        if existing:
            raise InvalidStateError(
                f"Player {player_id} already has an active campaign for cohort {cohort_id} "
                f"(ends turn {existing[0].end_turn})"
            )

        if boost is None:
            boost = calculate_campaign_boost(
                self.rng, settings.campaign_boost_min, settings.campaign_boost_max
            )
        campaign = Campaign(
            session_id=session_id,
            player_id=player_id,
            cohort_id=cohort_id,
            start_turn=start_turn,
            duration=self.default_duration if duration is None else duration,
            boost=boost,
        )
        await self.store.save_campaign(campaign)
        logger.info(
            "Campaign started: %s player=%s cohort=%s turns %d-%d boost=%d",
            campaign.id, player_id, cohort_id, campaign.start_turn, campaign.end_turn, boost,
        )
        return campaign

    async def cancel_campaign(self, campaign_id: UUID) -> Campaign:
        campaign = await self.store.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE:
            raise InvalidStateError(f"Campaign {campaign_id} is {campaign.status.value}")
        campaign.status = CampaignStatus.CANCELLED
        await self.store.save_campaign(campaign)
        logger.info("Campaign cancelled: %s", campaign_id)
        return campaign

    async def complete_campaign(self, campaign: Campaign, turn: int) -> Campaign:
        """
        Pay out a campaign's boost and mark it completed.

        Raises:
            InvalidStateError: If the campaign is not active or ``turn`` is not its end turn.
        """
        if campaign.status != CampaignStatus.ACTIVE:
            raise InvalidStateError(
                f"Campaign {campaign.id} is {campaign.status.value}, cannot complete"
            )
        if turn != campaign.end_turn:
            raise InvalidStateError(
                f"Campaign {campaign.id} ends on turn {campaign.end_turn}, not {turn}"
            )

        await self.reputation_service.apply_reputation_change(
            campaign.player_id,
            campaign.cohort_id,
            campaign.boost,
            ReputationSource.CAMPAIGN,
            str(campaign.id),
            turn,
            campaign.session_id,
        )
        campaign.status = CampaignStatus.COMPLETED
        campaign.completed_turn = turn
        await self.store.save_campaign(campaign)
        logger.info("Campaign completed: %s (+%d)", campaign.id, campaign.boost)
        return campaign

    async def complete_due_campaigns(self, session_id: str, turn: int) -> list[Campaign]:
        """Complete every active campaign of the session ending on ``turn``."""
        due = [
            c for c in await self.store.find_campaigns(session_id, CampaignStatus.ACTIVE)
            if c.end_turn == turn
        ]
        return [await self.complete_campaign(c, turn) for c in due]

    async def available_targets(
        self,
        session_id: str,
        player_id: str,
        province: str | None = None,
    ) -> list[DemographicCohort]:
        """Cohorts the player is not already campaigning toward."""
        active = await self.store.find_campaigns(
            session_id, CampaignStatus.ACTIVE, player_id=player_id
        )
        targeted = {c.cohort_id for c in active}
        return [c for c in await self.cohorts.list_cohorts(province) if c.id not in targeted]
