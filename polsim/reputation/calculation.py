"""
Reputation Calculation — pure functions that turn an event into an approval delta.

Nothing in this module touches storage. Every random draw goes through an
injected ``random.Random`` so callers (and tests) control the dice.

Scales:
    issue match   [-100, 0]     distance-only penalty, cannot reward
    cube match    [-100, +100]  symmetric alignment signal
    approval      [0, 100]      unidirectional trust
"""

from __future__ import annotations

import math
import random
from collections.abc import Mapping

from polsim.model.issues import Issue
from polsim.model.schema import (
    NewsOutlet,
    NewsSentiment,
    PoliticalCube,
    PoliticalPosition,
    PolicyRole,
    ReputationSource,
)

ISSUE_WEIGHT = 0.7
CUBE_WEIGHT = 0.3
MAX_ISSUE_DISTANCE = 20.0
MAX_CUBE_DISTANCE = math.sqrt(20 * 20 * 3)  # diagonal of the 20×20×20 cube

ROLE_WEIGHTS: dict[PolicyRole, float] = {
    PolicyRole.PROPOSER: 1.0,
    PolicyRole.YES: 0.4,
    PolicyRole.NO: -0.2,
    PolicyRole.ABSTAIN: 0.0,
}

ROLE_SOURCES: dict[PolicyRole, ReputationSource] = {
    PolicyRole.PROPOSER: ReputationSource.BILL_PROPOSAL,
    PolicyRole.YES: ReputationSource.BILL_VOTE_YES,
    PolicyRole.NO: ReputationSource.BILL_VOTE_NO,
    PolicyRole.ABSTAIN: ReputationSource.BILL_VOTE_ABSTAIN,
}

OUTLET_SOCIAL_BIAS: dict[NewsOutlet, float] = {
    NewsOutlet.AI_CONSERVATIVE: 8.0,
    NewsOutlet.AI_MODERATE: 0.0,
    NewsOutlet.AI_PROGRESSIVE: -8.0,
}

DECAY_BASELINE = 40.0
DECAY_NOISE_FLOOR = 0.1

# (upper bound of approval band, lowest draw, highest draw)
ENDORSEMENT_BANDS: tuple[tuple[float, int, int], ...] = (
    (40.0, -7, 1),
    (60.0, -5, 5),
    (math.inf, -1, 7),
)


def calculate_issue_match(
    player_position: PoliticalPosition | None,
    cohort_position: PoliticalPosition,
    policy_issue_positions: Mapping[Issue, float],
) -> float:
    """
    Salience-weighted agreement between a policy's issue stances and a cohort.

    Only the issues the policy specifies participate; issues the cohort has
    zero salience for are skipped. Each issue scores ``-|distance| / 20 * 100``.

    Returns:
        A score in [-100, 0]; 0 when no specified issue carries any salience.
    """
    weighted_sum = 0.0
    salience_total = 0.0
    for issue, policy_value in policy_issue_positions.items():
        salience = cohort_position.salience.get(issue, 0.0)
        if salience == 0:
            continue
        distance = policy_value - cohort_position.issues[issue]
        match = -abs(distance) / MAX_ISSUE_DISTANCE * 100
        weighted_sum += match * salience
        salience_total += salience
    if salience_total == 0:
        return 0.0
    return weighted_sum / salience_total


def calculate_cube_match(policy_cube: PoliticalCube, cohort_cube: PoliticalCube) -> float:
    """+100 for identical cube positions, -100 at opposite corners."""
    distance = math.sqrt(
        (policy_cube.economic - cohort_cube.economic) ** 2
        + (policy_cube.authority - cohort_cube.authority) ** 2
        + (policy_cube.social - cohort_cube.social) ** 2
    )
    return 100 - (distance / MAX_CUBE_DISTANCE) * 200


def calculate_policy_impact(role: PolicyRole, issue_match: float, cube_match: float) -> float:
    """
    Convert match scores into an unclamped approval delta for a player's role.

    Abstention short-circuits to zero. A no-vote carries a negative weight,
    so opposing a policy the cohort dislikes earns approval.
    """
    weight = ROLE_WEIGHTS[role]
    if weight == 0:
        return 0.0
    combined = ISSUE_WEIGHT * issue_match + CUBE_WEIGHT * cube_match
    return combined * weight


def calculate_endorsement_transfer(endorser_approval: float, rng: random.Random) -> int:
    """
    Random integer approval transfer from an endorsement.

    Below 40 the draw is in [-7, 1], from 40 to 59 in [-5, 5], and from 60
    up in [-1, 7].
    """
    for upper, low, high in ENDORSEMENT_BANDS:
        if endorser_approval < upper:
            return math.floor(rng.random() * (high - low + 1)) + low
    raise ValueError(f"Invalid endorser approval {endorser_approval}")


def calculate_campaign_boost(rng: random.Random, low: int = 1, high: int = 5) -> int:
    return math.floor(rng.random() * (high - low + 1)) + low


def calculate_decay(
    approval: float,
    decay_rate: float,
    baseline: float = DECAY_BASELINE,
) -> float | None:
    """
    Pull toward the baseline for one turn.

    Returns:
        ``(approval - baseline) * decay_rate`` (to be subtracted), or None when
        the pull is below the noise floor.
    """
    decay = (approval - baseline) * decay_rate
    if abs(decay) < DECAY_NOISE_FLOOR:
        return None
    return decay


def calculate_news_impact(
    sentiment: NewsSentiment,
    outlet: NewsOutlet,
    cohort_social: float,
    rng: random.Random,
) -> float:
    """
    Approval delta from one news article.

    AI outlets land harder on cohorts that share their social lean; player
    outlets draw from the full [-5, 5] range. The sign always follows the
    article's sentiment.
    """
    if sentiment == NewsSentiment.NEUTRAL:
        return 0.0
    base = rng.random() * 10 - 5
    bias = OUTLET_SOCIAL_BIAS.get(outlet)
    if bias is not None:
        alignment = 1 - abs(bias - cohort_social) / 20
        base *= alignment
    if sentiment == NewsSentiment.POSITIVE:
        return abs(base)
    return -abs(base)


def reason_text(source: ReputationSource, delta: float) -> str:
    """Human-readable history reason for a change."""
    direction = "increased" if delta > 0 else "decreased"
    amount = f"{abs(delta):.1f}"

    if source == ReputationSource.BILL_PROPOSAL:
        return f"Proposed bill ({direction} by {amount}%)"
    if source == ReputationSource.BILL_VOTE_YES:
        return f"Voted YES on bill ({direction} by {amount}%)"
    if source == ReputationSource.BILL_VOTE_NO:
        return f"Voted NO on bill ({direction} by {amount}%)"
    if source == ReputationSource.BILL_VOTE_ABSTAIN:
        return "Abstained from vote"
    if source == ReputationSource.CAMPAIGN:
        return f"Campaign effect (+{amount}%)"
    if source == ReputationSource.ENDORSEMENT:
        return f"Received endorsement ({direction} by {amount}%)"
    if source == ReputationSource.NEWS_ARTICLE:
        return f"News coverage ({direction} by {amount}%)"
    if source == ReputationSource.SCANDAL:
        return f"Scandal (-{amount}%)"
    if source == ReputationSource.TURN_DECAY:
        return f"Natural decay ({direction} by {amount}%)"
    return f"Reputation {direction} by {amount}%"
