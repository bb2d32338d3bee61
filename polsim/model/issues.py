"""
Issue catalog — the closed set of policy issues every position is scored on.

Position defaults, salience defaults and the policy-issue schema are all
derived from the single ``Issue`` enumeration below. Extending the catalog
means adding one member here; every mapping picks it up.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from typing import Any


class Issue(str, enum.Enum):
    """The 34 policy issues. Each stance runs from -10 to +10."""

    # Governance & sovereignty
    SOVEREIGNTY = "sovereignty"
    RESPONSIBLE_GOVERNMENT = "responsible_government"
    CENTRALIZATION = "centralization"

    # Property & land
    PROPERTY_RIGHTS = "property_rights"
    EMINENT_DOMAIN = "eminent_domain"
    LAND_SALES = "land_sales"

    # Economy & trade
    TAXES = "taxes"
    PROTECTIONISM = "protectionism"
    ECONOMIC_INTERVENTION = "economic_intervention"
    BUSINESS_REGULATION = "business_regulation"
    PRIVATIZATION = "privatization"

    # Labor
    WORKER_RIGHTS = "worker_rights"
    MINIMUM_WAGE = "minimum_wage"

    # Welfare
    WELFARE_STATE = "welfare_state"
    HEALTHCARE = "healthcare"
    UNIVERSAL_INCOME = "universal_income"

    # Rights & suffrage
    PROPERTY_SUFFRAGE = "property_suffrage"
    WOMENS_SUFFRAGE = "womens_suffrage"
    INDIGENOUS_RIGHTS = "indigenous_rights"
    GAY_RIGHTS = "gay_rights"
    TRANS_RIGHTS = "trans_rights"

    # Indigenous issues
    KINGITANGA = "kingitanga"
    WATER_RIGHTS = "water_rights"

    # Immigration & education
    IMMIGRATION = "immigration"
    EDUCATION_RIGHTS = "education_rights"

    # Justice
    DEATH_PENALTY = "death_penalty"
    JUSTICE = "justice"
    POLICE_REFORM = "police_reform"

    # Foreign policy
    INTERVENTIONISM = "interventionism"
    GLOBALISM = "globalism"

    # Social
    PRIVACY_RIGHTS = "privacy_rights"
    REPRODUCTIVE_RIGHTS = "reproductive_rights"

    # Environment & equity
    ENVIRONMENTAL_REGULATION = "environmental_regulation"
    EQUITY = "equity"


ISSUE_COUNT = len(Issue)

ISSUE_POSITION_DEFAULT = 0.0
ISSUE_SALIENCE_BASELINE = 0.05
MAX_TOTAL_SALIENCE = 10.0

POSITION_MIN = -10.0
POSITION_MAX = 10.0

# The nine issues that defined politics of the era; every cohort cares about
# these to some degree.
ERA_ISSUES: tuple[Issue, ...] = (
    Issue.SOVEREIGNTY,
    Issue.PROPERTY_RIGHTS,
    Issue.TAXES,
    Issue.PROTECTIONISM,
    Issue.LAND_SALES,
    Issue.KINGITANGA,
    Issue.RESPONSIBLE_GOVERNMENT,
    Issue.CENTRALIZATION,
    Issue.PROPERTY_SUFFRAGE,
)
ERA_ISSUE_SALIENCE = 0.3


def coerce_issue_map(raw: Mapping[Any, Any] | None) -> dict[Issue, Any]:
    """
    Convert a loosely keyed mapping into an ``Issue``-keyed dict.

    Raises:
        ValueError: If any key is not a member of the catalog.
    """
    result: dict[Issue, Any] = {}
    for key, value in (raw or {}).items():
        try:
            issue = key if isinstance(key, Issue) else Issue(key)
        except ValueError as e:
            raise ValueError(f"Unknown issue '{key}'") from e
        result[issue] = value
    return result


def complete_positions(raw: Mapping[Any, Any] | None) -> dict[Issue, float]:
    """Fill every catalog issue, defaulting missing stances to neutral."""
    known = coerce_issue_map(raw)
    return {issue: known.get(issue, ISSUE_POSITION_DEFAULT) for issue in Issue}


def complete_salience(raw: Mapping[Any, Any] | None) -> dict[Issue, float]:
    """Fill every catalog issue, defaulting missing weights to the baseline."""
    known = coerce_issue_map(raw)
    return {issue: known.get(issue, ISSUE_SALIENCE_BASELINE) for issue in Issue}


def normalize_salience(
    salience: Mapping[Issue, float],
    max_total: float = MAX_TOTAL_SALIENCE,
) -> dict[Issue, float]:
    """
    Rescale salience weights proportionally so their sum does not exceed max_total.

    Weights are clamped to [0, 1] first. Applied once at generation time;
    reads never renormalize.
    """
    clamped = {issue: min(1.0, max(0.0, float(w))) for issue, w in salience.items()}
    total = sum(clamped.values())
    if total <= max_total:
        return clamped
    factor = max_total / total
    return {issue: w * factor for issue, w in clamped.items()}
