"""
Match ORM Models

Head-to-head battles inside a round:
- Match: lifecycle status and the committed winner
- MatchParticipant: seeded entrant, optionally eliminated
- MatchTrack: at most one submitted track per participant
"""
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, Integer, DateTime, Text, ForeignKey,
    Index, UniqueConstraint
)
from sqlalchemy.orm import relationship

from rapbattle.orm.base import Base, BaseModel
from rapbattle.core.db_types import ValueEnum
from rapbattle.core.time import utcnow


# =============================================================================
# Enums
# =============================================================================

class MatchStatus(PyEnum):
    SCHEDULED = "scheduled"
    SUBMISSION = "submission"
    JUDGING = "judging"
    FINISHED = "finished"
    TIE = "tie"
    CANCELLED = "cancelled"


class ParticipantResult(PyEnum):
    ELIMINATED = "eliminated"


TERMINAL_MATCH_STATUSES = (MatchStatus.FINISHED, MatchStatus.TIE, MatchStatus.CANCELLED)
DECIDED_MATCH_STATUSES = (MatchStatus.FINISHED, MatchStatus.TIE)


# =============================================================================
# Model 1: Match
# =============================================================================

class Match(BaseModel):
    __tablename__ = "matches"

    round_id = Column(
        Integer,
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False
    )
    starts_at = Column(DateTime, nullable=True)
    ends_at = Column(DateTime, nullable=True)
    status = Column(
        ValueEnum(MatchStatus, "match_status"),
        nullable=False,
        default=MatchStatus.SCHEDULED
    )
    # Set only by finalization
    winner_match_track_id = Column(
        Integer,
        ForeignKey("match_tracks.id", use_alter=True, name="fk_match_winner_track", ondelete="SET NULL"),
        nullable=True
    )

    tracks = relationship(
        "MatchTrack",
        back_populates="match",
        foreign_keys="MatchTrack.match_id",
    )

    __table_args__ = (
        Index('idx_match_round', 'round_id'),
        Index('idx_match_status', 'status'),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_MATCH_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Raw serialization. Public reads go through the visibility gate."""
        return {
            "id": self.id,
            "round_id": self.round_id,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "status": self.status.value,
            "winner_match_track_id": self.winner_match_track_id,
        }


# =============================================================================
# Model 2: MatchParticipant
# =============================================================================

class MatchParticipant(Base):
    __tablename__ = "match_participants"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
        nullable=False
    )
    participant_id = Column(
        Integer,
        ForeignKey("tournament_participants.id", ondelete="RESTRICT"),
        nullable=False
    )
    seed = Column(Integer, nullable=True)
    result_status = Column(ValueEnum(ParticipantResult, "participant_result"), nullable=True)

    __table_args__ = (
        UniqueConstraint('match_id', 'participant_id', name='uq_match_participant'),
        Index('idx_match_participant_participant', 'participant_id'),
    )


# =============================================================================
# Model 3: MatchTrack
# =============================================================================

class MatchTrack(Base):
    __tablename__ = "match_tracks"

    id = Column(Integer, primary_key=True, index=True)
    match_id = Column(
        Integer,
        ForeignKey("matches.id", ondelete="CASCADE"),
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
    submitted_at = Column(DateTime, nullable=False, default=utcnow)

    match = relationship("Match", back_populates="tracks", foreign_keys=[match_id])

    __table_args__ = (
        UniqueConstraint('match_id', 'participant_id', name='uq_match_track_participant'),
        Index('idx_match_track_match', 'match_id'),
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "match_id": self.match_id,
            "participant_id": self.participant_id,
            "audio_id": self.audio_id,
            "lyrics": self.lyrics,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
