"""
Simulation Schema — Pydantic models for every engine entity.

These models are the canonical data structures shared by the reputation
engine, the policy lifecycle, campaigns, elections and the turn loop. Stores
persist them verbatim (``model_dump(mode="json")``) and hand back fresh copies.

Sections:
    Enumerations        — cohort facets, lifecycle states, reputation sources
    Positions           — political cube, issue stances, salience
    Cohorts             — demographic slices
    Reputation          — per (player, cohort) approval records
    Policies            — policy records with supersession shadows
    Campaigns           — flat-boost campaigns
    Elections           — candidates and election tallies
    Sessions            — game sessions and their turn clock
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone
from typing import Annotated, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, computed_field, field_validator

from polsim.model.issues import (
    POSITION_MAX,
    POSITION_MIN,
    Issue,
    coerce_issue_map,
    complete_positions,
    complete_salience,
)

Stance = Annotated[float, Field(ge=POSITION_MIN, le=POSITION_MAX)]
Weight = Annotated[float, Field(ge=0.0, le=1.0)]

REPUTATION_MIN = 0.0
REPUTATION_MAX = 100.0
HISTORY_LIMIT = 50


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class SocialClass(str, enum.Enum):
    """Economic class of a cohort."""

    UPPER = "upper"
    MIDDLE = "middle"
    LOWER = "lower"
    OTHER = "other"


class PropertyOwnership(str, enum.Enum):
    LANDOWNER = "landowner"
    TENANT = "tenant"
    NONE = "none"


class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class Settlement(str, enum.Enum):
    URBAN = "urban"
    RURAL = "rural"


class ReputationSource(str, enum.Enum):
    """What caused a change in a reputation record."""

    BILL_PROPOSAL = "bill-proposal"
    BILL_VOTE_YES = "bill-vote-yes"
    BILL_VOTE_NO = "bill-vote-no"
    BILL_VOTE_ABSTAIN = "bill-vote-abstain"
    CAMPAIGN = "campaign"
    ENDORSEMENT = "endorsement"
    NEWS_ARTICLE = "news-article"
    SCANDAL = "scandal"
    TURN_DECAY = "turn-decay"


class PolicyRole(str, enum.Enum):
    """How a player relates to a policy when its impact is scored."""

    PROPOSER = "proposer"
    YES = "yes"
    NO = "no"
    ABSTAIN = "abstain"


class PolicyStatus(str, enum.Enum):
    """Policy lifecycle: proposed → enacted → superseded (terminal)."""

    PROPOSED = "proposed"
    ENACTED = "enacted"
    SUPERSEDED = "superseded"


class VoteChoice(str, enum.Enum):
    YES = "yes"
    NO = "no"
    ABSTAIN = "abstain"


class CampaignStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ElectionStatus(str, enum.Enum):
    OPEN = "open"
    COMPLETED = "completed"


class SessionStatus(str, enum.Enum):
    """Turn loop state: active → processing → active."""

    ACTIVE = "active"
    PROCESSING = "processing"


class NewsSentiment(str, enum.Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class NewsOutlet(str, enum.Enum):
    """Kind of outlet that published an article. AI outlets carry an editorial lean."""

    AI_CONSERVATIVE = "ai-conservative"
    AI_MODERATE = "ai-moderate"
    AI_PROGRESSIVE = "ai-progressive"
    PLAYER_PROVINCIAL = "player-provincial"


# ════════════════════════════════════════════════════════════════
# Positions
# ════════════════════════════════════════════════════════════════


class PoliticalCube(BaseModel):
    """
    Three-axis ideology coordinate. Each axis is clamped to [-10, +10].

    economic:  socialist (-10) ↔ capitalist (+10)
    authority: anarchist (-10) ↔ authoritarian (+10)
    social:    progressive (-10) ↔ conservative (+10)
    """

    economic: float = 0.0
    authority: float = 0.0
    social: float = 0.0

    @field_validator("economic", "authority", "social")
    @classmethod
    def _clamp_axis(cls, v: float) -> float:
        return clamp(v, POSITION_MIN, POSITION_MAX)


class PoliticalPosition(BaseModel):
    """
    A full stance: cube coordinate plus all 34 issue stances and salience weights.

    Both maps are completed to exactly the catalog keys on construction:
    a missing stance defaults to neutral, a missing weight to the salience
    baseline. Unknown issue keys are rejected.
    """

    cube: PoliticalCube = Field(default_factory=PoliticalCube)
    issues: dict[Issue, Stance] = Field(default_factory=dict, validate_default=True)
    salience: dict[Issue, Weight] = Field(default_factory=dict, validate_default=True)

    @field_validator("issues", mode="before")
    @classmethod
    def _complete_issues(cls, v: Any) -> dict[Issue, Any]:
        return complete_positions(v)

    @field_validator("salience", mode="before")
    @classmethod
    def _complete_salience(cls, v: Any) -> dict[Issue, Any]:
        return complete_salience(v)

    @computed_field
    @property
    def total_salience(self) -> float:
        return sum(self.salience.values())


class PolicyPosition(BaseModel):
    """
    A policy's stance. Unlike a cohort position the issue map is partial:
    a policy only takes a position on the issues it actually addresses.
    """

    cube: PoliticalCube = Field(default_factory=PoliticalCube)
    issue_positions: dict[Issue, Stance] = Field(default_factory=dict)

    @field_validator("issue_positions", mode="before")
    @classmethod
    def _known_issues(cls, v: Any) -> dict[Issue, Any]:
        return coerce_issue_map(v)


class IdeologyScore(BaseModel):
    """Election-facing ideology of a candidate or voter bloc."""

    economic: Stance = 0.0
    social: Stance = 0.0
    personal: Stance = 0.0


# ════════════════════════════════════════════════════════════════
# Cohorts
# ════════════════════════════════════════════════════════════════


class EconomicFacet(BaseModel):
    social_class: SocialClass
    occupation: str = Field(description="Occupation key, e.g. 'landowner-farmer'")
    gender: Gender
    property_ownership: PropertyOwnership = PropertyOwnership.NONE


class CulturalFacet(BaseModel):
    ethnicity: str
    religion: str = ""
    indigenous: bool = False
    mixed: bool = Field(default=False, description="Mixed European/indigenous heritage")


class LocationalFacet(BaseModel):
    province: str
    settlement: Settlement = Settlement.RURAL
    urban_center: str | None = None


class DemographicCohort(BaseModel):
    """
    A population slice homogeneous enough to share one political reaction profile.

    Voting eligibility is derived once at generation time and is frozen
    afterwards; population may be adjusted by migration but never below zero.
    """

    model_config = {"validate_assignment": True}

    id: str = Field(description="Stable cohort identifier")
    economic: EconomicFacet
    cultural: CulturalFacet
    locational: LocationalFacet
    population: int = Field(ge=0)
    can_vote: bool = Field(frozen=True)
    default_position: PoliticalPosition = Field(default_factory=PoliticalPosition)


# ════════════════════════════════════════════════════════════════
# Reputation
# ════════════════════════════════════════════════════════════════


class ApprovalEntry(BaseModel):
    """One history row of a reputation record."""

    turn: int
    approval: float
    change: float = Field(description="Signed delta actually applied after clamping")
    reason: str
    source: ReputationSource
    source_id: str | None = None
    recorded_at: datetime = Field(default_factory=utcnow)


class ReputationRecord(BaseModel):
    """
    Approval of one cohort for one player, on a [0, 100] trust scale.

    History is bounded to the 50 most recent entries; older entries are
    dropped.
    """

    player_id: str
    cohort_id: str
    session_id: str | None = None
    approval: float = Field(ge=REPUTATION_MIN, le=REPUTATION_MAX)
    history: list[ApprovalEntry] = Field(default_factory=list)
    turn_updated: int = 0
    last_updated: datetime = Field(default_factory=utcnow)

    def trim_history(self, limit: int = HISTORY_LIMIT) -> int:
        """Drop the oldest entries beyond ``limit``. Returns how many were dropped."""
        overflow = len(self.history) - limit
        if overflow <= 0:
            return 0
        del self.history[:overflow]
        return overflow


def default_record(
    player_id: str,
    cohort_id: str,
    session_id: str | None = None,
    approval: float = 40.0,
) -> ReputationRecord:
    """
    Build the record a store hands out the first time a (player, cohort) pair
    is looked up. Organic first contact starts at mild distrust (40).
    """
    return ReputationRecord(
        player_id=player_id,
        cohort_id=cohort_id,
        session_id=session_id,
        approval=approval,
    )


class Endorsement(BaseModel):
    """Record of one player endorsing another and the per-cohort transfer."""

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    endorser_id: str
    endorsed_id: str
    turn: int
    reputation_changes: dict[str, int] = Field(
        default_factory=dict, description="cohort_id → approval delta applied"
    )
    created_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def net_change(self) -> int:
        return sum(self.reputation_changes.values())


# ════════════════════════════════════════════════════════════════
# Policies
# ════════════════════════════════════════════════════════════════


class DelayedEffect(BaseModel):
    """A numeric effect that lands on a later turn than enactment."""

    apply_at_turn: int
    payload: dict[str, float] = Field(default_factory=dict)
    prorated: bool = False
    completion_percentage: float | None = Field(
        default=None, description="Fraction of the delay elapsed when prorated"
    )
    applied: bool = False


class Policy(BaseModel):
    """
    A policy record with its supersession trail.

    Effect fields are zeroed when the policy leaves force; their last values
    are preserved in the matching ``superseded_*`` shadow fields.
    """

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    title: str
    description: str = ""
    category: str
    status: PolicyStatus = PolicyStatus.PROPOSED
    proposed_by: str
    proposed_turn: int
    position: PolicyPosition = Field(default_factory=PolicyPosition)

    votes: dict[str, VoteChoice] = Field(default_factory=dict, description="player_id → vote")
    passed: bool | None = None
    resolved_turn: int | None = None
    enacted_turn: int | None = None

    economic_impact: dict[str, float] = Field(default_factory=dict)
    reputation_impact: dict[str, float] = Field(default_factory=dict)
    resource_price_changes: dict[str, float] = Field(default_factory=dict)
    cultural_modifiers: dict[str, float] = Field(default_factory=dict)
    delayed_effect: DelayedEffect | None = None

    superseded_economic_impact: dict[str, float] | None = None
    superseded_reputation_impact: dict[str, float] | None = None
    superseded_resource_price_changes: dict[str, float] | None = None
    superseded_cultural_modifiers: dict[str, float] | None = None
    superseded_delayed_effect: DelayedEffect | None = None

    supersedes: list[UUID] = Field(default_factory=list)
    superseded_by: UUID | None = None
    deleted_by_event: str | None = None
    deletion_reason: str | None = None
    superseded_at: int | None = Field(default=None, description="Turn the policy left force")

    @computed_field
    @property
    def yes_votes(self) -> int:
        return sum(1 for v in self.votes.values() if v == VoteChoice.YES)

    @computed_field
    @property
    def no_votes(self) -> int:
        return sum(1 for v in self.votes.values() if v == VoteChoice.NO)

    def voters(self, choice: VoteChoice) -> list[str]:
        return [player for player, v in self.votes.items() if v == choice]


# ════════════════════════════════════════════════════════════════
# Campaigns
# ════════════════════════════════════════════════════════════════


class Campaign(BaseModel):
    """A player's campaign toward one cohort; pays a flat boost once, at end_turn."""

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    player_id: str
    cohort_id: str
    start_turn: int
    duration: int = Field(gt=0)
    boost: int
    status: CampaignStatus = CampaignStatus.ACTIVE
    completed_turn: int | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def end_turn(self) -> int:
        return self.start_turn + self.duration


# ════════════════════════════════════════════════════════════════
# Elections
# ════════════════════════════════════════════════════════════════


class Candidate(BaseModel):
    player_id: str
    ideology: IdeologyScore = Field(default_factory=IdeologyScore)
    funding_raised: float = Field(default=0.0, ge=0)
    endorsements: list[str] = Field(
        default_factory=list, description="player_ids endorsing this candidate"
    )
    reputation: float = Field(default=50.0, ge=REPUTATION_MIN, le=REPUTATION_MAX)


class Election(BaseModel):
    """A provincial election resolved by the NPC vote simulator."""

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    province: str
    office: str = "provincial-representative"
    candidates: list[Candidate] = Field(default_factory=list)
    status: ElectionStatus = ElectionStatus.OPEN
    province_population: int | None = Field(default=None, ge=0)
    player_votes: dict[str, str] = Field(
        default_factory=dict, description="voter player_id → candidate player_id"
    )
    results: dict[str, int] = Field(default_factory=dict)
    winner_id: str | None = None
    turnout: float | None = Field(default=None, description="Percent of province population")
    held_turn: int | None = None
    held_on: date | None = None

    def candidate(self, player_id: str) -> Candidate | None:
        for c in self.candidates:
            if c.player_id == player_id:
                return c
        return None


# ════════════════════════════════════════════════════════════════
# Sessions
# ════════════════════════════════════════════════════════════════


class GameSession(BaseModel):
    """A running game and its turn clock. Other records refer to it by ``str(id)``."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    current_turn: int = 1
    in_game_date: date
    status: SessionStatus = SessionStatus.ACTIVE
    turn_start_time: datetime = Field(default_factory=utcnow)
    turn_end_time: datetime
    auto_advance_enabled: bool = True
    last_turn_at: datetime | None = None
