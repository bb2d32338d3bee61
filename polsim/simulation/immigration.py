"""
Immigration — annual settler arrivals.

Every January the settler population grows by a base rate, scaled by the
``immigration_modifier`` of each enacted immigration policy. Arrivals are
spread over settler (non-indigenous) cohorts in proportion to population,
weighted by the policies' cultural modifiers for the cohort's ethnicity.
"""

from __future__ import annotations

import logging
import math

from pydantic import BaseModel, Field

from polsim.config import settings
from polsim.model.schema import DemographicCohort, PolicyStatus
from polsim.storage.base import CohortStore, PolicyStore

logger = logging.getLogger(__name__)

IMMIGRATION_CATEGORY = "immigration"
MODIFIER_KEY = "immigration_modifier"


class ImmigrationReport(BaseModel):
    total_population: int
    base_immigrants: int
    policy_modifier: float
    total_immigrants: int
    by_cohort: dict[str, int] = Field(default_factory=dict)


def distribute(total: int, weights: dict[str, float]) -> dict[str, int]:
    """
    Split ``total`` into integers proportional to ``weights`` (largest remainder).

    The result always sums to ``total`` when any weight is positive.
    """
    weight_sum = sum(w for w in weights.values() if w > 0)
    if total <= 0 or weight_sum <= 0:
        return {key: 0 for key in weights}

    exact = {key: total * max(w, 0.0) / weight_sum for key, w in weights.items()}
    shares = {key: math.floor(v) for key, v in exact.items()}
    leftover = total - sum(shares.values())
    by_remainder = sorted(exact, key=lambda k: exact[k] - shares[k], reverse=True)
    for key in by_remainder[:leftover]:
        shares[key] += 1
    return shares


class ImmigrationService:
    """Applies annual immigration to cohort populations."""

    def __init__(
        self,
        cohorts: CohortStore,
        policies: PolicyStore,
        rate: float | None = None,
    ) -> None:
        self.cohorts = cohorts
        self.policies = policies
        self.rate = settings.immigration_rate if rate is None else rate

    async def process_annual_immigration(self, session_id: str) -> ImmigrationReport:
        cohorts = await self.cohorts.list_cohorts()
        total_population = sum(c.population for c in cohorts)
        base = math.floor(total_population * self.rate)

        enacted = await self.policies.find_policies(
            session_id, IMMIGRATION_CATEGORY, PolicyStatus.ENACTED
        )
        modifier = 1.0
        cultural: dict[str, float] = {}
        for policy in enacted:
            if policy.economic_impact.get(MODIFIER_KEY):
                modifier *= policy.economic_impact[MODIFIER_KEY]
            for ethnicity, factor in policy.cultural_modifiers.items():
                cultural[ethnicity.lower()] = cultural.get(ethnicity.lower(), 1.0) * factor

        arrivals = max(0, math.floor(base * modifier))
        settlers: list[DemographicCohort] = [c for c in cohorts if not c.cultural.indigenous]
        weights = {
            c.id: c.population * cultural.get(c.cultural.ethnicity.lower(), 1.0) for c in settlers
        }
        shares = distribute(arrivals, weights)

        by_id = {c.id: c for c in settlers}
        for cohort_id, added in shares.items():
            if added:
                cohort = by_id[cohort_id]
                cohort.population += added
                await self.cohorts.save_cohort(cohort)

        report = ImmigrationReport(
            total_population=total_population,
            base_immigrants=base,
            policy_modifier=modifier,
            total_immigrants=sum(shares.values()),
            by_cohort={k: v for k, v in shares.items() if v},
        )
        logger.info(
            "Annual immigration for session %s: %d settlers (modifier %.2f)",
            session_id, report.total_immigrants, modifier,
        )
        return report
