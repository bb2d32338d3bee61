"""
SQLAlchemy tables for durable game state.

Each entity is stored as its full pydantic document in a JSON column, with
the fields the engine filters on lifted into indexed columns. The document
is the source of truth; the lifted columns are rewritten on every save.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all engine tables."""
    pass


class CohortDB(Base):
    """A demographic cohort: population, eligibility and default position."""

    __tablename__ = "cohorts"

    id = Column(String(200), primary_key=True)
    province = Column(String(100), nullable=False, index=True)
    can_vote = Column(Boolean, nullable=False, default=False)
    population = Column(Integer, nullable=False, default=0)
    document = Column(JSON, nullable=False, comment="Serialized DemographicCohort")

    def __repr__(self) -> str:
        return f"<Cohort {self.id} pop={self.population}>"


class ReputationDB(Base):
    """One player's standing with one cohort, keyed by the pair."""

    __tablename__ = "reputations"

    player_id = Column(String(100), primary_key=True)
    cohort_id = Column(String(200), primary_key=True)
    session_id = Column(String(100), nullable=True, index=True)
    approval = Column(Float, nullable=False, comment="Clamped to [0, 100]")
    document = Column(JSON, nullable=False, comment="Serialized ReputationRecord with history")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    __table_args__ = (
        Index("ix_reputations_session_player", "session_id", "player_id"),
    )


class EndorsementDB(Base):
    __tablename__ = "endorsements"

    id = Column(Uuid, primary_key=True)
    session_id = Column(String(100), nullable=False, index=True)
    endorser_id = Column(String(100), nullable=False)
    endorsed_id = Column(String(100), nullable=False)
    turn = Column(Integer, nullable=False)
    document = Column(JSON, nullable=False)


class PolicyDB(Base):
    """A proposed, enacted or superseded policy."""

    __tablename__ = "policies"

    id = Column(Uuid, primary_key=True)
    session_id = Column(String(100), nullable=False)
    category = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, comment="proposed, enacted or superseded")
    document = Column(JSON, nullable=False, comment="Serialized Policy incl. shadow effects")

    __table_args__ = (
        Index("ix_policies_session_category_status", "session_id", "category", "status"),
    )


class CampaignDB(Base):
    __tablename__ = "campaigns"

    id = Column(Uuid, primary_key=True)
    session_id = Column(String(100), nullable=False)
    player_id = Column(String(100), nullable=False)
    cohort_id = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False)
    document = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_campaigns_session_status", "session_id", "status"),
        Index("ix_campaigns_player_cohort", "player_id", "cohort_id"),
    )


class ElectionDB(Base):
    __tablename__ = "elections"

    id = Column(Uuid, primary_key=True)
    session_id = Column(String(100), nullable=False)
    province = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False)
    document = Column(JSON, nullable=False, comment="Serialized Election with candidates and results")

    __table_args__ = (
        Index("ix_elections_session_status", "session_id", "status"),
    )


class GameSessionDB(Base):
    """A game session and its turn clock."""

    __tablename__ = "game_sessions"

    id = Column(String(100), primary_key=True)
    status = Column(String(20), nullable=False, index=True, comment="active or processing")
    document = Column(JSON, nullable=False)
