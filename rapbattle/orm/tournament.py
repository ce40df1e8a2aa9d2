"""
Tournament ORM Models

Tournament container, participant registry and judge roster.
The judge roster is the eligibility source for random assignment.
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint

from rapbattle.orm.base import Base, BaseModel
from rapbattle.core.db_types import ValueEnum
from rapbattle.core.time import utcnow


class TournamentStatus(PyEnum):
    DRAFT = "draft"
    REGISTRATION = "registration"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# =============================================================================
# Model 1: Tournament
# =============================================================================

class Tournament(BaseModel):
    __tablename__ = "tournaments"

    title = Column(String(255), nullable=False)
    status = Column(
        ValueEnum(TournamentStatus, "tournament_status"),
        nullable=False,
        default=TournamentStatus.DRAFT
    )
    registration_open_at = Column(DateTime, nullable=True)
    submission_deadline_at = Column(DateTime, nullable=True)
    judging_deadline_at = Column(DateTime, nullable=True)
    public_at = Column(DateTime, nullable=True)
    max_bracket_size = Column(Integer, nullable=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value if self.status else None,
            "registration_open_at": self.registration_open_at.isoformat() if self.registration_open_at else None,
            "submission_deadline_at": self.submission_deadline_at.isoformat() if self.submission_deadline_at else None,
            "judging_deadline_at": self.judging_deadline_at.isoformat() if self.judging_deadline_at else None,
            "public_at": self.public_at.isoformat() if self.public_at else None,
            "max_bracket_size": self.max_bracket_size,
        }


# =============================================================================
# Model 2: TournamentParticipant
# =============================================================================

class TournamentParticipant(Base):
    """An artist registered in one tournament. Scoped per tournament."""
    __tablename__ = "tournament_participants"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(Integer, nullable=False)
    display_name = Column(String(120), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('tournament_id', 'user_id', name='uq_participant_tournament_user'),
        Index('idx_participant_tournament', 'tournament_id'),
    )


# =============================================================================
# Model 3: TournamentJudge (roster)
# =============================================================================

class TournamentJudge(Base):
    __tablename__ = "tournament_judges"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(
        Integer,
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint('tournament_id', 'user_id', name='uq_tournament_judge'),
        Index('idx_tournament_judge_user', 'user_id'),
    )
