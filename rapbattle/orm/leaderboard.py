"""
Materialized read views.

Both tables are projections rebuilt in full by the leaderboard service;
nothing else writes to them.
"""
from sqlalchemy import Column, Integer, DateTime, Float, ForeignKey, Index

from rapbattle.orm.base import Base
from rapbattle.core.time import utcnow


class MatchTrackScore(Base):
    """Average total score per match track."""
    __tablename__ = "mv_match_track_scores"

    match_track_id = Column(
        Integer,
        ForeignKey("match_tracks.id", ondelete="CASCADE"),
        primary_key=True
    )
    match_id = Column(Integer, nullable=False)
    avg_total = Column(Float, nullable=True)
    evaluation_count = Column(Integer, nullable=False, default=0)
    refreshed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_mv_track_scores_match', 'match_id'),
    )


class TournamentLeaderboardEntry(Base):
    """
    Wins per participant per round of a tournament.

    Kept per round so readers can sum only rounds whose results are visible.
    """
    __tablename__ = "mv_tournament_leaderboard"

    tournament_id = Column(Integer, primary_key=True)
    round_id = Column(Integer, primary_key=True)
    participant_id = Column(Integer, primary_key=True)
    wins = Column(Integer, nullable=False, default=0)
    refreshed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_mv_leaderboard_tournament_wins', 'tournament_id', 'wins'),
    )
