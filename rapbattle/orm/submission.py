"""
Qualifier Submission ORM Model

One track per participant per qualifier round. Moderation (approval)
happens outside the engine; only approved submissions are judged.
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, DateTime, Float, Text, ForeignKey,
    Index, UniqueConstraint
)

from rapbattle.orm.base import BaseModel
from rapbattle.core.db_types import ValueEnum


class SubmissionStatus(PyEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class QualifierResult(PyEnum):
    ADVANCED = "advanced"
    ELIMINATED = "eliminated"


class Submission(BaseModel):
    __tablename__ = "submissions"

    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    participant_id = Column(
        Integer,
        ForeignKey("tournament_participants.id", ondelete="RESTRICT"),
        nullable=False
    )
    audio_id = Column(
        Integer,
        ForeignKey("media_assets.id", ondelete="RESTRICT"),
        nullable=False
    )
    lyrics = Column(Text, nullable=True)
    status = Column(
        ValueEnum(SubmissionStatus, "submission_status"),
        nullable=False,
        default=SubmissionStatus.DRAFT
    )
    submitted_at = Column(DateTime, nullable=True)

    # Written by qualifier finalization
    result_status = Column(ValueEnum(QualifierResult, "qualifier_result"), nullable=True)
    avg_total_score = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint('round_id', 'participant_id', name='uq_submission_round_participant'),
        Index('idx_submission_round_status', 'round_id', 'status'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "round_id": self.round_id,
            "participant_id": self.participant_id,
            "audio_id": self.audio_id,
            "lyrics": self.lyrics,
            "status": self.status.value,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
            "result_status": self.result_status.value if self.result_status else None,
            "avg_total_score": self.avg_total_score,
        }
