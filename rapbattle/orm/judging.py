"""
Judging ORM Models

- JudgeAssignment: "this judge currently owns scoring this match"
- Evaluation: one judge's latest opinion on one target (match | submission)
- EvaluationTrackScore: per-track lines of a match evaluation

Evaluation is a tagged union over its target_type discriminant; both
judged shapes share one table. Uniqueness on (judge, target_type, target)
makes every re-submission an in-place overwrite.
"""
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, Float, Boolean, ForeignKey,
    Index, UniqueConstraint
)

from rapbattle.orm.base import Base, BaseModel
from rapbattle.core.db_types import UniversalJSON, ValueEnum
from rapbattle.core.time import utcnow


# =============================================================================
# Enums
# =============================================================================

class AssignmentStatus(PyEnum):
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class EvaluationTargetType(PyEnum):
    MATCH = "match"
    SUBMISSION = "submission"


# =============================================================================
# Model 1: JudgeAssignment
# =============================================================================

class JudgeAssignment(Base):
    __tablename__ = "judge_assignments"

    id = Column(Integer, primary_key=True, index=True)
    judge_id = Column(Integer, nullable=False)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False
    )
    status = Column(
        ValueEnum(AssignmentStatus, "assignment_status"),
        nullable=False,
        default=AssignmentStatus.ASSIGNED
    )
    assigned_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('judge_id', 'match_id', name='uq_judge_assignment'),
        Index('idx_assignment_judge_status', 'judge_id', 'status'),
        Index('idx_assignment_match', 'match_id'),
    )


# =============================================================================
# Model 2: Evaluation
# =============================================================================

class Evaluation(BaseModel):
    __tablename__ = "evaluations"

    judge_id = Column(Integer, nullable=False)
    target_type = Column(ValueEnum(EvaluationTargetType, "evaluation_target"), nullable=False)
    target_id = Column(Integer, nullable=False)
    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    passed = Column(Boolean, nullable=True)
    score = Column(Float, nullable=True)
    rubric = Column(UniversalJSON, nullable=True)
    comment = Column(String(2000), nullable=True)
    total_score = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint('judge_id', 'target_type', 'target_id', name='uq_evaluation_judge_target'),
        Index('idx_evaluation_target', 'target_type', 'target_id'),
        Index('idx_evaluation_round', 'round_id'),
    )

    def to_dict(self, lines: Optional[List["EvaluationTrackScore"]] = None) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "judge_id": self.judge_id,
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "round_id": self.round_id,
            "pass": self.passed,
            "score": self.score,
            "rubric": self.rubric,
            "comment": self.comment,
            "total_score": self.total_score,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if lines is not None:
            result["tracks"] = [line.to_dict() for line in sorted(lines, key=lambda l: l.match_track_id)]
        return result


# =============================================================================
# Model 3: EvaluationTrackScore
# =============================================================================

class EvaluationTrackScore(Base):
    __tablename__ = "evaluation_track_scores"

    id = Column(Integer, primary_key=True, index=True)
    evaluation_id = Column(
        Integer,
        ForeignKey("evaluations.id", ondelete="CASCADE"),
        nullable=False
    )
    match_track_id = Column(
        Integer,
        ForeignKey("match_tracks.id", ondelete="CASCADE"),
        nullable=False
    )
    passed = Column(Boolean, nullable=True)
    score = Column(Float, nullable=True)
    rubric = Column(UniversalJSON, nullable=True)
    total_score = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint('evaluation_id', 'match_track_id', name='uq_evaluation_track'),
        Index('idx_evaluation_track_track', 'match_track_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_track_id": self.match_track_id,
            "pass": self.passed,
            "score": self.score,
            "rubric": self.rubric,
            "total_score": self.total_score,
        }
