"""
Evaluation Store

One row per (judge, target_type, target_id); a re-submission overwrites
the judge's previous opinion in place.

Match evaluations carry one EvaluationTrackScore line per MatchTrack and a
total equal to the mean of the line totals. Submission evaluations carry
pass / score / rubric directly.

Every payload is validated in full before the first write.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.config.settings import settings
from rapbattle.core.db_types import upsert_insert
from rapbattle.core.time import resolve_now
from rapbattle.errors import (
    JudgeNotAssignedError, NotFoundError, RoundAlreadyFinalizedError, ValidationFailedError,
)
from rapbattle.orm.judging import Evaluation, EvaluationTargetType, EvaluationTrackScore
from rapbattle.orm.match import MatchParticipant, MatchTrack
from rapbattle.orm.round import Round
from rapbattle.orm.submission import Submission, SubmissionStatus
from rapbattle.orm.tournament import TournamentParticipant
from rapbattle.services import leaderboard_service, scoring_service
from rapbattle.services.assignment_service import has_assignment, is_rostered, load_match_with_round
from rapbattle.services.scoring_service import ScoredLine
from rapbattle.services.visibility import gate_value, gated_match_dict, results_visible
from rapbattle.state_machines.lifecycle import ensure_judging_window, ensure_match_open

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

async def _upsert_evaluation(
    db: AsyncSession,
    judge_id: int,
    target_type: EvaluationTargetType,
    target_id: int,
    round_id: int,
    passed: Optional[bool],
    score: Optional[float],
    rubric: Optional[Dict[str, float]],
    comment: Optional[str],
    total_score: Optional[float],
    now: datetime
) -> Evaluation:
    table = Evaluation.__table__
    stmt = upsert_insert(db, table).values(
        judge_id=judge_id,
        target_type=target_type,
        target_id=target_id,
        round_id=round_id,
        passed=passed,
        score=score,
        rubric=rubric,
        comment=comment,
        total_score=total_score,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.judge_id, table.c.target_type, table.c.target_id],
        set_={
            "passed": stmt.excluded.passed,
            "score": stmt.excluded.score,
            "rubric": stmt.excluded.rubric,
            "comment": stmt.excluded.comment,
            "total_score": stmt.excluded.total_score,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await db.execute(stmt)

    result = await db.execute(
        select(Evaluation)
        .where(
            Evaluation.judge_id == judge_id,
            Evaluation.target_type == target_type,
            Evaluation.target_id == target_id,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def load_lines(db: AsyncSession, evaluation_ids: Iterable[int]) -> Dict[int, List[EvaluationTrackScore]]:
    """Per-track lines grouped by evaluation id."""
    evaluation_ids = list(evaluation_ids)
    grouped: Dict[int, List[EvaluationTrackScore]] = {eid: [] for eid in evaluation_ids}
    if not evaluation_ids:
        return grouped

    result = await db.execute(
        select(EvaluationTrackScore)
        .where(EvaluationTrackScore.evaluation_id.in_(evaluation_ids))
        .order_by(EvaluationTrackScore.evaluation_id, EvaluationTrackScore.match_track_id)
    )
    for line in result.scalars().all():
        grouped[line.evaluation_id].append(line)
    return grouped


def _score_track_lines(
    round_obj: Round,
    tracks: List[MatchTrack],
    payload_lines: List[Mapping[str, Any]]
) -> Dict[int, ScoredLine]:
    """Validate that the payload covers every track exactly once and score each line."""
    track_ids = {t.id for t in tracks}
    seen: Dict[int, Mapping[str, Any]] = {}
    duplicates: List[int] = []

    for line in payload_lines:
        track_id = line.get("match_track_id")
        if track_id in seen:
            duplicates.append(track_id)
            continue
        seen[track_id] = line

    unknown = sorted(tid for tid in seen if tid not in track_ids)
    missing = sorted(track_ids - set(seen))
    if duplicates or unknown or missing:
        raise ValidationFailedError(
            "Evaluation must score every match track exactly once",
            details={
                "duplicate_track_ids": sorted(duplicates),
                "unknown_track_ids": unknown,
                "missing_track_ids": missing,
            },
        )

    return {
        track_id: scoring_service.score_line(
            round_obj,
            passed=line.get("pass"),
            score=line.get("score"),
            rubric=line.get("rubric"),
        )
        for track_id, line in sorted(seen.items())
    }


# =============================================================================
# Match evaluations
# =============================================================================

async def submit_match_evaluation(
    db: AsyncSession,
    judge_id: int,
    match_id: int,
    tracks: List[Mapping[str, Any]],
    comment: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Record or overwrite a judge's opinion on a match.

    Requires an open match, an open judging window, and an assignment or
    roster claim to the match's tournament.
    """
    now = resolve_now(now)

    match, round_obj = await load_match_with_round(db, match_id)
    ensure_match_open(match)
    ensure_judging_window(round_obj, now)

    if not (
        await has_assignment(db, judge_id, match_id)
        or await is_rostered(db, judge_id, round_obj.tournament_id)
    ):
        logger.warning(f"Score rejected: judge {judge_id} has no claim to match {match_id}")
        raise JudgeNotAssignedError(details={"judge_id": judge_id, "match_id": match_id})

    result = await db.execute(
        select(MatchTrack).where(MatchTrack.match_id == match_id).order_by(MatchTrack.id)
    )
    match_tracks = list(result.scalars().all())
    if not match_tracks:
        raise ValidationFailedError("Match has no tracks to score", details={"match_id": match_id})

    scored = _score_track_lines(round_obj, match_tracks, tracks)
    total = scoring_service.mean(line.total_score for line in scored.values())

    try:
        evaluation = await _upsert_evaluation(
            db,
            judge_id=judge_id,
            target_type=EvaluationTargetType.MATCH,
            target_id=match_id,
            round_id=round_obj.id,
            passed=None,
            score=None,
            rubric=None,
            comment=comment,
            total_score=total,
            now=now,
        )
        await db.execute(
            delete(EvaluationTrackScore)
            .where(EvaluationTrackScore.evaluation_id == evaluation.id)
            .execution_options(synchronize_session=False)
        )
        lines = [
            EvaluationTrackScore(
                evaluation_id=evaluation.id,
                match_track_id=track_id,
                passed=line.passed,
                score=line.score,
                rubric=line.rubric,
                total_score=line.total_score,
            )
            for track_id, line in scored.items()
        ]
        db.add_all(lines)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Judge {judge_id} scored match {match_id}: total={total:.2f}")
    return evaluation.to_dict(lines)


# =============================================================================
# Submission evaluations
# =============================================================================

async def submit_submission_evaluation(
    db: AsyncSession,
    judge_id: int,
    submission_id: int,
    passed: Optional[bool] = None,
    score: Optional[float] = None,
    rubric: Optional[Mapping[str, Any]] = None,
    comment: Optional[str] = None,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Record or overwrite a judge's opinion on an approved qualifier submission."""
    now = resolve_now(now)

    result = await db.execute(
        select(Submission, Round)
        .join(Round, Round.id == Submission.round_id)
        .where(Submission.id == submission_id)
    )
    row = result.one_or_none()
    if not row:
        raise NotFoundError.for_resource("Submission", submission_id)
    submission, round_obj = row[0], row[1]

    if submission.status != SubmissionStatus.APPROVED:
        raise ValidationFailedError(
            "Only approved submissions can be judged",
            details={"submission_id": submission_id, "status": submission.status.value},
        )
    if submission.result_status is not None:
        raise RoundAlreadyFinalizedError(
            "Submission result has already been decided",
            details={"submission_id": submission_id},
        )
    ensure_judging_window(round_obj, now)

    if not await is_rostered(db, judge_id, round_obj.tournament_id):
        logger.warning(f"Score rejected: judge {judge_id} not rostered for submission {submission_id}")
        raise JudgeNotAssignedError(details={"judge_id": judge_id, "submission_id": submission_id})

    line = scoring_service.score_line(round_obj, passed=passed, score=score, rubric=rubric)

    try:
        evaluation = await _upsert_evaluation(
            db,
            judge_id=judge_id,
            target_type=EvaluationTargetType.SUBMISSION,
            target_id=submission_id,
            round_id=round_obj.id,
            passed=line.passed,
            score=line.score,
            rubric=line.rubric,
            comment=comment,
            total_score=line.total_score,
            now=now,
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Judge {judge_id} scored submission {submission_id}: total={line.total_score:.2f}")
    return evaluation.to_dict()


# =============================================================================
# Judge queries
# =============================================================================

async def get_judge_match_details(
    db: AsyncSession,
    judge_id: int,
    match_id: int,
    now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Everything a judge needs to score a match, with results gated."""
    now = resolve_now(now)

    match, round_obj = await load_match_with_round(db, match_id)
    if not (
        await has_assignment(db, judge_id, match_id)
        or await is_rostered(db, judge_id, round_obj.tournament_id)
    ):
        raise JudgeNotAssignedError(details={"judge_id": judge_id, "match_id": match_id})

    visible = results_visible(round_obj, now)

    seats = await db.execute(
        select(MatchParticipant, TournamentParticipant)
        .join(TournamentParticipant, TournamentParticipant.id == MatchParticipant.participant_id)
        .where(MatchParticipant.match_id == match_id)
        .order_by(MatchParticipant.seed.is_(None), MatchParticipant.seed, MatchParticipant.id)
        .execution_options(populate_existing=True)
    )
    track_result = await db.execute(select(MatchTrack).where(MatchTrack.match_id == match_id))
    tracks_by_participant = {t.participant_id: t for t in track_result.scalars().all()}
    track_scores = await leaderboard_service.get_match_track_scores(db, match_id)

    participants = []
    for seat, participant in seats.all():
        track = tracks_by_participant.get(participant.id)
        track_data = None
        if track:
            track_data = track.to_dict()
            track_data["avg_total"] = gate_value(track_scores.get(track.id, {}).get("avg_total"), visible)
        participants.append({
            "participant_id": participant.id,
            "display_name": participant.display_name,
            "seed": seat.seed,
            "result_status": gate_value(seat.result_status.value if seat.result_status else None, visible),
            "track": track_data,
        })

    own = await db.execute(
        select(Evaluation).where(
            Evaluation.judge_id == judge_id,
            Evaluation.target_type == EvaluationTargetType.MATCH,
            Evaluation.target_id == match_id,
        )
    )
    evaluation = own.scalar_one_or_none()
    evaluation_data = None
    if evaluation:
        lines = await load_lines(db, [evaluation.id])
        evaluation_data = evaluation.to_dict(lines[evaluation.id])

    return {
        "match": gated_match_dict(match, round_obj, now),
        "round": round_obj.to_dict(),
        "rubric": [c.to_dict() for c in round_obj.criteria],
        "participants": participants,
        "evaluation": evaluation_data,
    }


async def list_judge_history(
    db: AsyncSession,
    judge_id: int,
    limit: Optional[int] = None
) -> List[Dict[str, Any]]:
    """The judge's most recent evaluations, newest first."""
    if limit is None:
        limit = settings.JUDGE_HISTORY_LIMIT

    result = await db.execute(
        select(Evaluation)
        .where(Evaluation.judge_id == judge_id)
        .order_by(Evaluation.updated_at.desc(), Evaluation.id.desc())
        .limit(limit)
    )
    evaluations = list(result.scalars().all())
    lines = await load_lines(db, [e.id for e in evaluations if e.target_type == EvaluationTargetType.MATCH])
    return [
        e.to_dict(lines.get(e.id)) if e.target_type == EvaluationTargetType.MATCH else e.to_dict()
        for e in evaluations
    ]
