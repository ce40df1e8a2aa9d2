"""
Leaderboard Materializer

Rebuilds the two read views after finalization:
- mv_match_track_scores: average line total per match track
- mv_tournament_leaderboard: wins per participant (per round, per tournament)

Each refresh is a full replace inside one transaction, so readers see
either the previous projection or the new one, never a mix.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, insert, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.core.time import resolve_now
from rapbattle.orm.judging import EvaluationTrackScore
from rapbattle.orm.leaderboard import MatchTrackScore, TournamentLeaderboardEntry
from rapbattle.orm.match import Match, MatchStatus, MatchTrack
from rapbattle.orm.round import Round, RoundStatus
from rapbattle.orm.tournament import TournamentParticipant

logger = logging.getLogger(__name__)


# =============================================================================
# Refresh
# =============================================================================

async def refresh_leaderboards(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    """Recompute both views from scratch and commit."""
    now = resolve_now(now)

    track_scores = (
        select(
            MatchTrack.id,
            MatchTrack.match_id,
            func.avg(EvaluationTrackScore.total_score),
            func.count(EvaluationTrackScore.id),
            literal(now),
        )
        .select_from(MatchTrack)
        .outerjoin(EvaluationTrackScore, EvaluationTrackScore.match_track_id == MatchTrack.id)
        .group_by(MatchTrack.id, MatchTrack.match_id)
    )

    wins = (
        select(
            Round.tournament_id,
            Round.id,
            MatchTrack.participant_id,
            func.count(Match.id),
            literal(now),
        )
        .select_from(Match)
        .join(MatchTrack, MatchTrack.id == Match.winner_match_track_id)
        .join(Round, Round.id == Match.round_id)
        .where(Match.status == MatchStatus.FINISHED)
        .group_by(Round.tournament_id, Round.id, MatchTrack.participant_id)
    )

    try:
        await db.execute(delete(MatchTrackScore))
        track_result = await db.execute(
            insert(MatchTrackScore.__table__).from_select(
                ["match_track_id", "match_id", "avg_total", "evaluation_count", "refreshed_at"],
                track_scores,
            )
        )
        await db.execute(delete(TournamentLeaderboardEntry))
        wins_result = await db.execute(
            insert(TournamentLeaderboardEntry.__table__).from_select(
                ["tournament_id", "round_id", "participant_id", "wins", "refreshed_at"],
                wins,
            )
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    counts = {
        "match_track_scores": max(track_result.rowcount, 0),
        "leaderboard_entries": max(wins_result.rowcount, 0),
    }
    logger.info(
        f"Leaderboards refreshed: {counts['match_track_scores']} track rows, "
        f"{counts['leaderboard_entries']} win rows"
    )
    return counts


# =============================================================================
# Reads
# =============================================================================

async def get_match_track_scores(db: AsyncSession, match_id: int) -> Dict[int, Dict[str, Any]]:
    """Materialized average per track of a match. Callers apply the visibility gate."""
    result = await db.execute(
        select(MatchTrackScore).where(MatchTrackScore.match_id == match_id)
    )
    return {
        row.match_track_id: {
            "avg_total": row.avg_total,
            "evaluation_count": row.evaluation_count,
        }
        for row in result.scalars().all()
    }


async def get_tournament_leaderboard(
    db: AsyncSession,
    tournament_id: int,
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """
    Tournament standings by wins.

    Only rounds whose results are visible at `now` contribute, so the
    standings never reveal an outcome the match view still hides.
    """
    now = resolve_now(now)
    visible_round = or_(
        Round.status == RoundStatus.FINISHED,
        Round.judging_deadline_at < now,
    )

    total_wins = func.sum(TournamentLeaderboardEntry.wins).label("wins")
    result = await db.execute(
        select(
            TournamentLeaderboardEntry.participant_id,
            TournamentParticipant.display_name,
            total_wins,
        )
        .select_from(TournamentLeaderboardEntry)
        .join(Round, Round.id == TournamentLeaderboardEntry.round_id)
        .outerjoin(TournamentParticipant, TournamentParticipant.id == TournamentLeaderboardEntry.participant_id)
        .where(TournamentLeaderboardEntry.tournament_id == tournament_id, visible_round)
        .group_by(TournamentLeaderboardEntry.participant_id, TournamentParticipant.display_name)
        .order_by(total_wins.desc(), TournamentLeaderboardEntry.participant_id.asc())
    )

    standings = []
    for rank, (participant_id, display_name, win_count) in enumerate(result.all(), start=1):
        standings.append({
            "rank": rank,
            "participant_id": participant_id,
            "display_name": display_name,
            "wins": int(win_count),
        })
    return standings
