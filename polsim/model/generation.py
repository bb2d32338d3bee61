"""
Cohort generation — rule-based seeding of eligibility and default positions.

Run once at world/session setup. The rules encode the politics of a settler
colony in the 1850s: property-qualified suffrage, indigenous sovereignty and
land sales dominate, labor and welfare issues barely register.
"""

from __future__ import annotations

import logging

from polsim.model.issues import (
    ERA_ISSUE_SALIENCE,
    ERA_ISSUES,
    ISSUE_SALIENCE_BASELINE,
    POSITION_MAX,
    POSITION_MIN,
    Issue,
    normalize_salience,
)
from polsim.model.schema import (
    CulturalFacet,
    DemographicCohort,
    EconomicFacet,
    Gender,
    LocationalFacet,
    PoliticalCube,
    PoliticalPosition,
    PropertyOwnership,
    SocialClass,
)

logger = logging.getLogger(__name__)

# Provinces with a strong local-autonomy or sovereignty bent.
FRONTIER_PROVINCES = {"Southland"}
REMOTE_PROVINCES = {"Te Moana-a-Toir"}


def derive_voting_eligibility(economic: EconomicFacet, cultural: CulturalFacet) -> bool:
    """Property-qualified male suffrage: European men who own land."""
    return (
        economic.gender == Gender.MALE
        and not cultural.indigenous
        and not cultural.mixed
        and economic.property_ownership == PropertyOwnership.LANDOWNER
    )


def _bounded(value: float) -> float:
    return max(POSITION_MIN, min(POSITION_MAX, value))


def _cube(economic: EconomicFacet, cultural: CulturalFacet) -> PoliticalCube:
    occupation = economic.occupation
    cls = economic.social_class

    econ = {SocialClass.UPPER: 8, SocialClass.MIDDLE: 3, SocialClass.LOWER: -4}.get(cls, 0)
    if "landowner" in occupation:
        econ += 2
    if "tenant" in occupation:
        econ -= 3
    if "laborer" in occupation:
        econ -= 2
    if occupation == "manufacturer":
        econ += 4
    if occupation == "merchant":
        econ += 5
    if "miner" in occupation:
        econ -= 2
    if economic.property_ownership == PropertyOwnership.LANDOWNER:
        econ += 2
    elif economic.property_ownership == PropertyOwnership.TENANT:
        econ -= 2

    authority = {SocialClass.UPPER: -5, SocialClass.MIDDLE: -2, SocialClass.LOWER: 3}.get(cls, 0)
    authority += {"government-official": 4, "military": 6, "missionary": 3}.get(occupation, 0)
    if cultural.indigenous:
        authority += 7
    if cultural.mixed:
        authority += 5

    social = {SocialClass.UPPER: 7, SocialClass.MIDDLE: 4, SocialClass.LOWER: 2}.get(cls, 0)
    social += {"methodist": 5, "presbyterian": 6, "catholic": 4, "atheist": -5}.get(
        cultural.religion, 0
    )
    if cultural.indigenous:
        social -= 6
    social += {"missionary": 8, "teacher": -2}.get(occupation, 0)
    if economic.gender == Gender.FEMALE:
        social -= 1

    return PoliticalCube(economic=econ, authority=authority, social=social)


def _issue_stances(
    economic: EconomicFacet,
    cultural: CulturalFacet,
    locational: LocationalFacet,
    can_vote: bool,
) -> dict[Issue, float]:
    cls = economic.social_class
    occ = economic.occupation
    owns = economic.property_ownership
    upper = cls == SocialClass.UPPER
    lower = cls == SocialClass.LOWER
    indigenous = cultural.indigenous
    mixed = cultural.mixed
    religion = cultural.religion

    def pick(*pairs: tuple[bool, float], default: float) -> float:
        for condition, value in pairs:
            if condition:
                return value
        return default

    return {
        Issue.SOVEREIGNTY: pick((indigenous, 10), (upper, -8), default=-3),
        Issue.RESPONSIBLE_GOVERNMENT: pick((can_vote, 8), (indigenous, -5), default=0),
        Issue.CENTRALIZATION: pick(
            (upper, -5), (locational.province in FRONTIER_PROVINCES, -7), default=0
        ),
        Issue.PROPERTY_RIGHTS: pick(
            (owns == PropertyOwnership.LANDOWNER, 9),
            (owns == PropertyOwnership.TENANT, -4),
            default=0,
        ),
        Issue.EMINENT_DOMAIN: pick((upper, -8), default=2),
        Issue.LAND_SALES: pick((indigenous, -10), ("landowner" in occ, 7), default=2),
        Issue.TAXES: pick((upper, -9), (lower, 5), default=0),
        Issue.PROTECTIONISM: pick((occ == "manufacturer", 8), (occ == "merchant", -6), default=0),
        Issue.ECONOMIC_INTERVENTION: pick((lower, 6), (upper, -7), default=-2),
        Issue.BUSINESS_REGULATION: pick(("miner" in occ, 6), (occ == "manufacturer", -8), default=0),
        Issue.PRIVATIZATION: pick((upper, 7), default=-3),
        Issue.WORKER_RIGHTS: pick(("laborer" in occ or "miner" in occ, 9), (upper, -6), default=2),
        Issue.MINIMUM_WAGE: pick((lower, 8), (upper, -7), default=0),
        Issue.WELFARE_STATE: pick((lower, 7), (upper, -8), default=-2),
        Issue.HEALTHCARE: pick((lower, 6), (occ == "doctor", 4), default=-3),
        Issue.UNIVERSAL_INCOME: pick((lower, 5), default=-7),
        Issue.PROPERTY_SUFFRAGE: pick((can_vote, 8), (cls == SocialClass.MIDDLE, 3), default=-5),
        Issue.WOMENS_SUFFRAGE: pick((economic.gender == Gender.FEMALE, 7), (upper, -8), default=-4),
        Issue.INDIGENOUS_RIGHTS: pick((indigenous, 10), (mixed, 7), (upper, -6), default=-2),
        Issue.GAY_RIGHTS: pick((religion == "atheist", 5), (occ == "missionary", -9), default=-6),
        Issue.TRANS_RIGHTS: pick((religion == "atheist", 4), default=-8),
        Issue.KINGITANGA: pick((indigenous, 10), (mixed, 5), default=-7),
        Issue.WATER_RIGHTS: pick((indigenous, 10), (occ == "fisherman", 4), default=-2),
        Issue.IMMIGRATION: pick((indigenous, -8), (upper, 6), ("laborer" in occ, -3), default=2),
        Issue.EDUCATION_RIGHTS: pick((occ == "teacher", 8), (upper, 5), default=3),
        Issue.DEATH_PENALTY: pick((religion == "methodist", -6), (upper, 4), default=2),
        Issue.JUSTICE: pick((occ == "lawyer", 6), default=0),
        Issue.POLICE_REFORM: pick((lower, 4), default=-3),
        Issue.INTERVENTIONISM: pick((occ == "military", 7), (indigenous, -8), default=-2),
        Issue.GLOBALISM: pick((occ == "merchant", 8), (indigenous, -7), default=0),
        Issue.PRIVACY_RIGHTS: pick((upper, 7), default=2),
        Issue.REPRODUCTIVE_RIGHTS: pick((upper, 8), default=-4),
        Issue.ENVIRONMENTAL_REGULATION: pick(("miner" in occ, -7), (indigenous, 6), default=0),
        Issue.EQUITY: pick((lower, 6), (upper, -8), default=-2),
    }


def _issue_salience(
    economic: EconomicFacet,
    cultural: CulturalFacet,
    locational: LocationalFacet,
    can_vote: bool,
) -> dict[Issue, float]:
    salience = {issue: ISSUE_SALIENCE_BASELINE for issue in Issue}
    for issue in ERA_ISSUES:
        salience[issue] = ERA_ISSUE_SALIENCE

    occ = economic.occupation
    cls = economic.social_class
    overrides: list[dict[Issue, float]] = []

    if economic.property_ownership == PropertyOwnership.LANDOWNER:
        overrides.append({
            Issue.PROPERTY_RIGHTS: 1.0,
            Issue.TAXES: 1.0,
            Issue.PROPERTY_SUFFRAGE: 0.9,
            Issue.LAND_SALES: 0.8,
            Issue.CENTRALIZATION: 0.6,
        })
    elif economic.property_ownership == PropertyOwnership.TENANT:
        overrides.append({
            Issue.LAND_SALES: 1.0,
            Issue.PROPERTY_RIGHTS: 0.8,
            Issue.PROPERTY_SUFFRAGE: 0.9,
            Issue.TAXES: 0.5,
        })

    if cultural.indigenous:
        overrides.append({
            Issue.SOVEREIGNTY: 1.0,
            Issue.KINGITANGA: 1.0,
            Issue.LAND_SALES: 1.0,
            Issue.PROPERTY_RIGHTS: 0.9,
            Issue.RESPONSIBLE_GOVERNMENT: 0.7,
            Issue.CENTRALIZATION: 0.6,
            Issue.INDIGENOUS_RIGHTS: 0.4,
            Issue.WATER_RIGHTS: 0.4,
        })
    if cultural.mixed:
        overrides.append({
            Issue.SOVEREIGNTY: 0.8,
            Issue.KINGITANGA: 0.7,
            Issue.LAND_SALES: 0.7,
            Issue.PROPERTY_RIGHTS: 0.6,
            Issue.INDIGENOUS_RIGHTS: 0.3,
        })

    if cls == SocialClass.UPPER:
        overrides.append({
            Issue.TAXES: 1.0,
            Issue.PROPERTY_RIGHTS: 1.0,
            Issue.RESPONSIBLE_GOVERNMENT: 0.8,
            Issue.CENTRALIZATION: 0.7,
            Issue.PROTECTIONISM: 0.6,
        })
    elif cls == SocialClass.MIDDLE:
        overrides.append({
            Issue.PROPERTY_SUFFRAGE: 0.8,
            Issue.TAXES: 0.7,
            Issue.PROTECTIONISM: 0.6,
            Issue.RESPONSIBLE_GOVERNMENT: 0.7,
        })
    elif cls == SocialClass.LOWER:
        overrides.append({
            Issue.PROPERTY_SUFFRAGE: 0.9,
            Issue.LAND_SALES: 0.6,
            Issue.TAXES: 0.5,
            Issue.WORKER_RIGHTS: 0.3,
            Issue.MINIMUM_WAGE: 0.2,
        })

    if occ == "merchant":
        overrides.append({
            Issue.PROTECTIONISM: 1.0,
            Issue.TAXES: 0.9,
            Issue.CENTRALIZATION: 0.6,
            Issue.RESPONSIBLE_GOVERNMENT: 0.7,
        })
    elif occ == "manufacturer":
        overrides.append({
            Issue.PROTECTIONISM: 1.0,
            Issue.PROPERTY_RIGHTS: 0.8,
            Issue.TAXES: 0.8,
        })
    elif occ == "government-official":
        overrides.append({
            Issue.RESPONSIBLE_GOVERNMENT: 1.0,
            Issue.CENTRALIZATION: 0.9,
            Issue.SOVEREIGNTY: 0.8,
        })
    elif occ == "missionary":
        overrides.append({
            Issue.SOVEREIGNTY: 0.7,
            Issue.KINGITANGA: 0.6,
            Issue.RESPONSIBLE_GOVERNMENT: 0.6,
            Issue.LAND_SALES: 0.5,
        })
    if "farmer" in occ or occ == "rancher":
        overrides.append({
            Issue.LAND_SALES: 0.9,
            Issue.PROPERTY_RIGHTS: 0.9,
            Issue.CENTRALIZATION: 0.7,
            Issue.TAXES: 0.6,
        })

    for override in overrides:
        salience.update(override)

    # Floors: raise, never lower.
    floors: dict[Issue, float] = {}
    if can_vote:
        floors.update({
            Issue.RESPONSIBLE_GOVERNMENT: 0.8,
            Issue.PROPERTY_SUFFRAGE: 0.7,
            Issue.CENTRALIZATION: 0.6,
        })
    if locational.province in FRONTIER_PROVINCES:
        floors.update({Issue.LAND_SALES: 0.7, Issue.CENTRALIZATION: 0.7})
    if locational.province in REMOTE_PROVINCES:
        floors.update({Issue.SOVEREIGNTY: 0.8, Issue.CENTRALIZATION: 0.7})
    for issue, floor in floors.items():
        salience[issue] = max(salience[issue], floor)

    return salience


def generate_default_position(
    economic: EconomicFacet,
    cultural: CulturalFacet,
    locational: LocationalFacet,
) -> PoliticalPosition:
    """
    Seed a cohort's default political position from its facets.

    Salience starts at the baseline for every issue, rises to the era level
    for the nine defining issues, is then adjusted by class, property and
    indigeneity, and finally normalized so the total does not exceed 10.
    """
    can_vote = derive_voting_eligibility(economic, cultural)
    issues = {
        issue: _bounded(value)
        for issue, value in _issue_stances(economic, cultural, locational, can_vote).items()
    }
    salience = normalize_salience(_issue_salience(economic, cultural, locational, can_vote))
    return PoliticalPosition(cube=_cube(economic, cultural), issues=issues, salience=salience)


def build_cohort(
    cohort_id: str,
    economic: EconomicFacet,
    cultural: CulturalFacet,
    locational: LocationalFacet,
    population: int,
    default_position: PoliticalPosition | None = None,
) -> DemographicCohort:
    """
    Construct a cohort, deriving voting eligibility exactly once.

    Args:
        cohort_id: Stable identifier for the slice.
        economic: Class, occupation, gender and property facet.
        cultural: Ethnicity, religion and heritage facet.
        locational: Province and settlement facet.
        population: Head count (must be non-negative).
        default_position: Explicit position; generated from the facets when omitted.

    Returns:
        The new cohort.
    """
    if default_position is None:
        default_position = generate_default_position(economic, cultural, locational)
    cohort = DemographicCohort(
        id=cohort_id,
        economic=economic,
        cultural=cultural,
        locational=locational,
        population=population,
        can_vote=derive_voting_eligibility(economic, cultural),
        default_position=default_position,
    )
    logger.debug(
        "Built cohort %s (%s, pop=%d, can_vote=%s)",
        cohort.id, locational.province, population, cohort.can_vote,
    )
    return cohort
