"""
Aggregation & Finalization Engine

Explicit administrative action that turns evaluations into an outcome.

Matches:
- weighted: highest per-track mean total wins; equal means -> tie
- majority: per-judge votes (pass counts, point sums, or top rubric line);
  a strict majority wins, anything else -> tie

Qualifier rounds:
- each approved submission advances or is eliminated

Finalization refuses incomplete data (finalize_not_ready) and refuses to
run twice (terminal-state guard). The decision write is conditioned on
the match still being open, so concurrent finalizers cannot both win.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.config.settings import settings
from rapbattle.core.time import resolve_now
from rapbattle.errors import (
    FinalizeNotReadyError, MatchAlreadyFinalizedError, NotFoundError,
    RoundAlreadyFinalizedError, ValidationFailedError,
)
from rapbattle.orm.judging import (
    AssignmentStatus, Evaluation, EvaluationTargetType, JudgeAssignment,
)
from rapbattle.orm.match import (
    TERMINAL_MATCH_STATUSES, Match, MatchParticipant, MatchStatus, MatchTrack, ParticipantResult,
)
from rapbattle.orm.round import Round, RoundKind, RoundScoring, RoundStrategy
from rapbattle.orm.submission import QualifierResult, Submission, SubmissionStatus
from rapbattle.services import leaderboard_service
from rapbattle.services.evaluation_service import load_lines
from rapbattle.services.scoring_service import mean
from rapbattle.state_machines.lifecycle import ensure_match_open

logger = logging.getLogger(__name__)


@dataclass
class MatchDecision:
    """Outcome of aggregating one match. winner_match_track_id is None on a tie."""
    winner_match_track_id: Optional[int]
    tallies: Dict[int, Any] = field(default_factory=dict)

    @property
    def status(self) -> MatchStatus:
        return MatchStatus.FINISHED if self.winner_match_track_id is not None else MatchStatus.TIE


# =============================================================================
# Pure decision rules
# =============================================================================

def _unique_top(values: Mapping[int, float], tolerance: float) -> Optional[int]:
    """Key of the strictly highest value (beyond tolerance), else None."""
    if not values:
        return None
    ranked = sorted(values.items(), key=lambda kv: (-kv[1], kv[0]))
    if len(ranked) == 1:
        return ranked[0][0]
    (best_id, best), (_, runner_up) = ranked[0], ranked[1]
    if best - runner_up > tolerance:
        return best_id
    return None


def decide_weighted(
    track_ids: Sequence[int],
    judge_lines: Sequence[Mapping[int, Any]],
    tolerance: Optional[float] = None
) -> MatchDecision:
    """
    Mean line total per track across the judges who scored it.

    judge_lines holds one {match_track_id: line} mapping per evaluating
    judge; a line needs a `total_score`.
    """
    if tolerance is None:
        tolerance = settings.SCORE_TIE_TOLERANCE

    means: Dict[int, float] = {}
    for track_id in track_ids:
        avg = mean(
            lines[track_id].total_score
            for lines in judge_lines
            if track_id in lines and lines[track_id].total_score is not None
        )
        if avg is not None:
            means[track_id] = avg

    return MatchDecision(winner_match_track_id=_unique_top(means, tolerance), tallies=means)


def decide_majority(
    scoring: RoundScoring,
    track_ids: Sequence[int],
    judge_lines: Sequence[Mapping[int, Any]],
    tolerance: Optional[float] = None
) -> MatchDecision:
    """
    Majority vote over the evaluating judges.

    pass_fail: a track needs passes from a strict majority of judges and
    strictly more passes than any other track.
    points: unique highest point sum wins.
    rubric: each judge votes for their highest-total track (equal top
    lines abstain); a strict majority of judges wins.
    """
    if tolerance is None:
        tolerance = settings.SCORE_TIE_TOLERANCE
    judge_count = len(judge_lines)

    if scoring == RoundScoring.PASS_FAIL:
        passes = {
            track_id: sum(1 for lines in judge_lines if track_id in lines and lines[track_id].passed)
            for track_id in track_ids
        }
        leader = _unique_top(passes, 0)
        winner = leader if leader is not None and passes[leader] * 2 > judge_count else None
        return MatchDecision(winner_match_track_id=winner, tallies=passes)

    if scoring == RoundScoring.POINTS:
        sums = {
            track_id: sum(
                lines[track_id].score or 0.0
                for lines in judge_lines
                if track_id in lines
            )
            for track_id in track_ids
        }
        return MatchDecision(winner_match_track_id=_unique_top(sums, tolerance), tallies=sums)

    votes = {track_id: 0 for track_id in track_ids}
    for lines in judge_lines:
        totals = {
            track_id: line.total_score
            for track_id, line in lines.items()
            if track_id in votes and line.total_score is not None
        }
        favourite = _unique_top(totals, tolerance)
        if favourite is not None:
            votes[favourite] += 1

    leader = _unique_top(votes, 0)
    winner = leader if leader is not None and votes[leader] * 2 > judge_count else None
    return MatchDecision(winner_match_track_id=winner, tallies=votes)


def decide_match(round_obj: Round, track_ids: Sequence[int], judge_lines: Sequence[Mapping[int, Any]]) -> MatchDecision:
    if round_obj.strategy == RoundStrategy.MAJORITY:
        return decide_majority(round_obj.scoring, track_ids, judge_lines)
    return decide_weighted(track_ids, judge_lines)


def decide_qualifier(
    strategy: RoundStrategy,
    scoring: RoundScoring,
    evaluations: Sequence[Any],
    threshold: Optional[float] = None
) -> bool:
    """True when a submission advances."""
    if threshold is None:
        threshold = settings.QUALIFIER_PASS_THRESHOLD
    if not evaluations:
        return False

    if strategy == RoundStrategy.MAJORITY:
        if scoring == RoundScoring.PASS_FAIL:
            in_favour = sum(1 for e in evaluations if e.passed)
        else:
            in_favour = sum(1 for e in evaluations if (e.total_score or 0.0) >= threshold)
        return in_favour * 2 > len(evaluations)

    avg = mean(e.total_score or 0.0 for e in evaluations)
    return avg is not None and avg >= threshold


# =============================================================================
# Match finalization
# =============================================================================

async def _load_match_evaluations(db: AsyncSession, match_id: int) -> List[Evaluation]:
    result = await db.execute(
        select(Evaluation)
        .where(
            Evaluation.target_type == EvaluationTargetType.MATCH,
            Evaluation.target_id == match_id,
        )
        .order_by(Evaluation.judge_id)
    )
    return list(result.scalars().all())


async def check_match_ready(
    db: AsyncSession,
    match: Match,
    round_obj: Round,
    tracks: List[MatchTrack],
    evaluations: List[Evaluation]
) -> None:
    """Raise FinalizeNotReadyError listing what is missing."""
    if not tracks:
        raise FinalizeNotReadyError("Match has no submitted tracks", details={"match_id": match.id})

    if round_obj.requires_tracks:
        seats = await db.execute(
            select(MatchParticipant.participant_id).where(MatchParticipant.match_id == match.id)
        )
        with_track = {t.participant_id for t in tracks}
        missing = sorted(pid for pid in seats.scalars().all() if pid not in with_track)
        if missing:
            raise FinalizeNotReadyError(
                "Participants are missing tracks",
                details={"match_id": match.id, "missing_participant_ids": missing},
            )

    if not evaluations:
        raise FinalizeNotReadyError("Match has no evaluations", details={"match_id": match.id})

    if round_obj.strategy == RoundStrategy.MAJORITY:
        assigned = await db.execute(
            select(JudgeAssignment.judge_id).where(
                JudgeAssignment.match_id == match.id,
                JudgeAssignment.status.in_([AssignmentStatus.ASSIGNED, AssignmentStatus.COMPLETED]),
            )
        )
        evaluated = {e.judge_id for e in evaluations}
        pending = sorted(jid for jid in assigned.scalars().all() if jid not in evaluated)
        if pending:
            raise FinalizeNotReadyError(
                "Assigned judges have not evaluated the match",
                details={"match_id": match.id, "pending_judge_ids": pending},
            )


async def finalize_match(
    db: AsyncSession,
    match_id: int,
    now: Optional[datetime] = None,
    eliminate_losers: Optional[bool] = None,
    refresh_views: bool = True
) -> Dict[str, Any]:
    """
    Decide and close a match, then rebuild the read views.

    Raises MatchAlreadyFinalizedError on a decided match, MatchClosedError
    on a cancelled one, FinalizeNotReadyError when data is incomplete.
    """
    now = resolve_now(now)
    if eliminate_losers is None:
        eliminate_losers = settings.ELIMINATE_BRACKET_LOSERS

    try:
        result = await db.execute(
            select(Match)
            .where(Match.id == match_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        match = result.scalar_one_or_none()
        if not match:
            raise NotFoundError.for_resource("Match", match_id)
        ensure_match_open(match)

        round_result = await db.execute(select(Round).where(Round.id == match.round_id))
        round_obj = round_result.scalar_one()

        track_result = await db.execute(
            select(MatchTrack).where(MatchTrack.match_id == match_id).order_by(MatchTrack.id)
        )
        tracks = list(track_result.scalars().all())
        evaluations = await _load_match_evaluations(db, match_id)

        await check_match_ready(db, match, round_obj, tracks, evaluations)

        lines_by_evaluation = await load_lines(db, [e.id for e in evaluations])
        judge_lines = [
            {line.match_track_id: line for line in lines_by_evaluation[e.id]}
            for e in evaluations
        ]
        decision = decide_match(round_obj, [t.id for t in tracks], judge_lines)

        update_result = await db.execute(
            update(Match)
            .where(Match.id == match_id, Match.status.notin_(TERMINAL_MATCH_STATUSES))
            .values(
                status=decision.status,
                winner_match_track_id=decision.winner_match_track_id,
                ends_at=func.coalesce(Match.ends_at, now),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if update_result.rowcount == 0:
            raise MatchAlreadyFinalizedError(details={"match_id": match_id})

        eliminated: List[int] = []
        if decision.winner_match_track_id is not None and eliminate_losers and round_obj.kind == RoundKind.BRACKET:
            winner_participant = next(
                t.participant_id for t in tracks if t.id == decision.winner_match_track_id
            )
            seats = await db.execute(
                select(MatchParticipant.participant_id).where(
                    MatchParticipant.match_id == match_id,
                    MatchParticipant.participant_id != winner_participant,
                )
            )
            eliminated = sorted(seats.scalars().all())
            await db.execute(
                update(MatchParticipant)
                .where(
                    MatchParticipant.match_id == match_id,
                    MatchParticipant.participant_id != winner_participant,
                )
                .values(result_status=ParticipantResult.ELIMINATED)
                .execution_options(synchronize_session=False)
            )

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(match)
    logger.info(
        f"Match {match_id} finalized: status={decision.status.value}, "
        f"winner_track={decision.winner_match_track_id}, judges={len(evaluations)}"
    )

    views_refreshed = False
    if refresh_views:
        # The match stays decided; views can be rebuilt via /api/admin/views/refresh
        try:
            await leaderboard_service.refresh_leaderboards(db, now)
            views_refreshed = True
        except SQLAlchemyError as e:
            logger.error(f"Leaderboard refresh after finalizing match {match_id} failed: {e}")

    return {
        "match": match.to_dict(),
        "strategy": round_obj.strategy.value,
        "tallies": {str(track_id): value for track_id, value in decision.tallies.items()},
        "evaluation_count": len(evaluations),
        "eliminated_participant_ids": eliminated,
        "views_refreshed": views_refreshed,
    }


# =============================================================================
# Qualifier finalization
# =============================================================================

async def finalize_qualifier_round(
    db: AsyncSession,
    round_id: int,
    threshold: Optional[float] = None
) -> Dict[str, Any]:
    """Advance or eliminate every approved submission of a qualifier round."""
    if threshold is None:
        threshold = settings.QUALIFIER_PASS_THRESHOLD

    try:
        result = await db.execute(
            select(Round)
            .where(Round.id == round_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        round_obj = result.scalar_one_or_none()
        if not round_obj:
            raise NotFoundError.for_resource("Round", round_id)
        if not round_obj.is_qualifier:
            raise ValidationFailedError(
                "Only qualifier rounds are finalized per submission",
                details={"round_id": round_id, "kind": round_obj.kind.value},
            )

        sub_result = await db.execute(
            select(Submission)
            .where(Submission.round_id == round_id, Submission.status == SubmissionStatus.APPROVED)
            .order_by(Submission.id)
        )
        submissions = list(sub_result.scalars().all())
        if not submissions:
            raise FinalizeNotReadyError("Round has no approved submissions", details={"round_id": round_id})

        decided = [s.id for s in submissions if s.result_status is not None]
        if decided:
            raise RoundAlreadyFinalizedError(details={"round_id": round_id, "decided_submission_ids": decided})

        eval_result = await db.execute(
            select(Evaluation).where(
                Evaluation.target_type == EvaluationTargetType.SUBMISSION,
                Evaluation.target_id.in_([s.id for s in submissions]),
            )
        )
        by_submission: Dict[int, List[Evaluation]] = {s.id: [] for s in submissions}
        for evaluation in eval_result.scalars().all():
            by_submission[evaluation.target_id].append(evaluation)

        unevaluated = [sid for sid, evals in by_submission.items() if not evals]
        if unevaluated:
            raise FinalizeNotReadyError(
                "Submissions have no evaluations",
                details={"round_id": round_id, "unevaluated_submission_ids": unevaluated},
            )

        outcomes = []
        for submission in submissions:
            evaluations = by_submission[submission.id]
            advanced = decide_qualifier(round_obj.strategy, round_obj.scoring, evaluations, threshold)
            submission.result_status = QualifierResult.ADVANCED if advanced else QualifierResult.ELIMINATED
            submission.avg_total_score = mean(e.total_score or 0.0 for e in evaluations)
            outcomes.append({
                "submission_id": submission.id,
                "participant_id": submission.participant_id,
                "result_status": submission.result_status.value,
                "avg_total_score": submission.avg_total_score,
                "pass_count": sum(1 for e in evaluations if e.passed),
                "fail_count": sum(1 for e in evaluations if e.passed is False),
                "score_sum": sum(e.score or 0.0 for e in evaluations),
                "judge_count": len(evaluations),
            })

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    advanced_count = sum(1 for o in outcomes if o["result_status"] == QualifierResult.ADVANCED.value)
    logger.info(f"Qualifier round {round_id} finalized: {advanced_count}/{len(outcomes)} advanced")
    return {"round_id": round_id, "results": outcomes}
