"""
Round ORM Models

A round is one judged phase of a tournament. Its scoring discipline
selects the judged target:
- pass_fail / points: qualifier Submissions, judged independently
- rubric: Matches, judged head-to-head against weighted criteria
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, String, DateTime, Float, ForeignKey,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from rapbattle.orm.base import Base, BaseModel
from rapbattle.core.db_types import ValueEnum


# =============================================================================
# Enums
# =============================================================================

class RoundKind(PyEnum):
    QUALIFIER1 = "qualifier1"
    QUALIFIER2 = "qualifier2"
    BRACKET = "bracket"
    CHALLENGE = "challenge"


class RoundScoring(PyEnum):
    PASS_FAIL = "pass_fail"
    POINTS = "points"
    RUBRIC = "rubric"


class RoundStrategy(PyEnum):
    WEIGHTED = "weighted"
    MAJORITY = "majority"


class RoundStatus(PyEnum):
    DRAFT = "draft"
    SUBMISSION = "submission"
    JUDGING = "judging"
    FINISHED = "finished"


QUALIFIER_KINDS = (RoundKind.QUALIFIER1, RoundKind.QUALIFIER2)
HEAD_TO_HEAD_KINDS = (RoundKind.BRACKET, RoundKind.CHALLENGE)


# =============================================================================
# Model 1: Round
# =============================================================================

class Round(BaseModel):
    __tablename__ = "rounds"

    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    kind = Column(ValueEnum(RoundKind, "round_kind"), nullable=False)
    number = Column(Integer, nullable=False)
    scoring = Column(ValueEnum(RoundScoring, "round_scoring"), nullable=False)
    strategy = Column(
        ValueEnum(RoundStrategy, "round_strategy"),
        nullable=False,
        default=RoundStrategy.WEIGHTED
    )
    status = Column(
        ValueEnum(RoundStatus, "round_status"),
        nullable=False,
        default=RoundStatus.DRAFT
    )
    starts_at = Column(DateTime, nullable=True)
    submission_deadline_at = Column(DateTime, nullable=True)
    judging_deadline_at = Column(DateTime, nullable=True)

    criteria = relationship(
        "RubricCriterion",
        lazy="selectin",
        order_by="RubricCriterion.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint('tournament_id', 'number', name='uq_round_tournament_number'),
        Index('idx_round_status', 'status'),
        CheckConstraint("number > 0", name="ck_round_number_positive"),
    )

    @property
    def is_qualifier(self) -> bool:
        return self.kind in QUALIFIER_KINDS

    @property
    def requires_tracks(self) -> bool:
        """Head-to-head rounds need a track from every participant."""
        return self.kind in HEAD_TO_HEAD_KINDS

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "kind": self.kind.value,
            "number": self.number,
            "scoring": self.scoring.value,
            "strategy": self.strategy.value,
            "status": self.status.value,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "submission_deadline_at": self.submission_deadline_at.isoformat() if self.submission_deadline_at else None,
            "judging_deadline_at": self.judging_deadline_at.isoformat() if self.judging_deadline_at else None,
        }


# =============================================================================
# Model 2: RubricCriterion
# =============================================================================

class RubricCriterion(Base):
    __tablename__ = "round_rubric_criteria"

    id = Column(Integer, primary_key=True, index=True)
    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    key = Column(String(64), nullable=False)
    name = Column(String(120), nullable=False)
    weight = Column(Float, nullable=False, default=1.0)
    min_value = Column(Float, nullable=False, default=0.0)
    max_value = Column(Float, nullable=False, default=10.0)
    position = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint('round_id', 'key', name='uq_criterion_round_key'),
        CheckConstraint("weight > 0", name="ck_criterion_weight_positive"),
        CheckConstraint("max_value > min_value", name="ck_criterion_bounds"),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "name": self.name,
            "weight": self.weight,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "position": self.position,
        }
