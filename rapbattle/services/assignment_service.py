"""
Judge Assignment Scheduler

Hands matches to judges:
- Random assignment resumes an in-flight assignment before picking a new match
- Manual assignment targets one match (roster checks bypassed for challenges)
- Deterministic candidate ordering: round number, match start (nulls first), match id
- Assignment rows are upserted on (judge_id, match_id); the unique
  constraint resolves concurrent duplicate requests
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.config.settings import settings
from rapbattle.core.db_types import upsert_insert
from rapbattle.core.time import deadline_passed, resolve_now
from rapbattle.errors import (
    AssignmentNotAllowedError, AssignmentNotFoundError, JudgingWindowClosedError,
    NotAuthorizedError, NotFoundError, ValidationFailedError,
)
from rapbattle.orm.judging import AssignmentStatus, Evaluation, EvaluationTargetType, JudgeAssignment
from rapbattle.orm.match import TERMINAL_MATCH_STATUSES, Match, MatchTrack
from rapbattle.orm.round import Round, RoundStatus
from rapbattle.orm.tournament import TournamentJudge
from rapbattle.state_machines.lifecycle import ensure_match_open

logger = logging.getLogger(__name__)


# =============================================================================
# Helpers
# =============================================================================

def _assignment_view(assignment: JudgeAssignment, match: Match, round_obj: Round) -> Dict[str, Any]:
    return {
        "id": assignment.id,
        "judge_id": assignment.judge_id,
        "match_id": assignment.match_id,
        "status": assignment.status.value,
        "assigned_at": assignment.assigned_at.isoformat() if assignment.assigned_at else None,
        "match_status": match.status.value,
        "match_starts_at": match.starts_at.isoformat() if match.starts_at else None,
        "round": {
            "id": round_obj.id,
            "tournament_id": round_obj.tournament_id,
            "kind": round_obj.kind.value,
            "number": round_obj.number,
            "scoring": round_obj.scoring.value,
            "strategy": round_obj.strategy.value,
            "judging_deadline_at": (
                round_obj.judging_deadline_at.isoformat() if round_obj.judging_deadline_at else None
            ),
        },
    }


async def is_rostered(db: AsyncSession, judge_id: int, tournament_id: int) -> bool:
    result = await db.execute(
        select(TournamentJudge.id).where(
            TournamentJudge.tournament_id == tournament_id,
            TournamentJudge.user_id == judge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def has_assignment(db: AsyncSession, judge_id: int, match_id: int) -> bool:
    result = await db.execute(
        select(JudgeAssignment.id).where(
            JudgeAssignment.judge_id == judge_id,
            JudgeAssignment.match_id == match_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def load_match_with_round(db: AsyncSession, match_id: int) -> Tuple[Match, Round]:
    result = await db.execute(
        select(Match, Round)
        .join(Round, Round.id == Match.round_id)
        .where(Match.id == match_id)
    )
    row = result.one_or_none()
    if not row:
        raise NotFoundError.for_resource("Match", match_id)
    return row[0], row[1]


def _eligible_matches_query(judge_id: int, now: datetime):
    """
    Candidate matches for a judge, in deterministic order.

    A candidate must be in a judging round whose deadline has not passed,
    be undecided, have at least one track, belong to a tournament the
    judge is rostered for, and be neither assigned to nor evaluated by
    the judge already.
    """
    has_track = exists().where(MatchTrack.match_id == Match.id)
    on_roster = exists().where(
        TournamentJudge.tournament_id == Round.tournament_id,
        TournamentJudge.user_id == judge_id,
    )
    already_assigned = exists().where(
        JudgeAssignment.match_id == Match.id,
        JudgeAssignment.judge_id == judge_id,
    )
    already_evaluated = exists().where(
        Evaluation.judge_id == judge_id,
        Evaluation.target_type == EvaluationTargetType.MATCH,
        Evaluation.target_id == Match.id,
    )

    return (
        select(Match, Round)
        .join(Round, Round.id == Match.round_id)
        .where(
            and_(
                Round.status == RoundStatus.JUDGING,
                or_(Round.judging_deadline_at.is_(None), Round.judging_deadline_at >= now),
                Match.status.notin_(TERMINAL_MATCH_STATUSES),
                has_track,
                on_roster,
                ~already_assigned,
                ~already_evaluated,
            )
        )
        .order_by(
            Round.number.asc(),
            Match.starts_at.is_(None).desc(),
            Match.starts_at.asc(),
            Match.id.asc(),
        )
    )


async def _upsert_assignment(
    db: AsyncSession,
    judge_id: int,
    match_id: int,
    now: datetime
) -> JudgeAssignment:
    """Create or refresh the (judge, match) assignment; re-assigning resets status."""
    table = JudgeAssignment.__table__
    stmt = upsert_insert(db, table).values(
        judge_id=judge_id,
        match_id=match_id,
        status=AssignmentStatus.ASSIGNED,
        assigned_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.judge_id, table.c.match_id],
        set_={
            "status": stmt.excluded.status,
            "assigned_at": stmt.excluded.assigned_at,
        },
    )
    await db.execute(stmt)

    result = await db.execute(
        select(JudgeAssignment)
        .where(JudgeAssignment.judge_id == judge_id, JudgeAssignment.match_id == match_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# Random assignment
# =============================================================================

async def find_in_flight_assignment(
    db: AsyncSession,
    judge_id: int
) -> Optional[Tuple[JudgeAssignment, Match, Round]]:
    """Most recent `assigned` assignment on a match that is still open."""
    result = await db.execute(
        select(JudgeAssignment, Match, Round)
        .join(Match, Match.id == JudgeAssignment.match_id)
        .join(Round, Round.id == Match.round_id)
        .where(
            JudgeAssignment.judge_id == judge_id,
            JudgeAssignment.status == AssignmentStatus.ASSIGNED,
            Match.status.notin_(TERMINAL_MATCH_STATUSES),
        )
        .order_by(JudgeAssignment.assigned_at.desc(), JudgeAssignment.id.desc())
        .limit(1)
    )
    row = result.first()
    if not row:
        return None
    return row[0], row[1], row[2]


async def assign_next(
    db: AsyncSession,
    judge_id: int,
    now: Optional[datetime] = None
) -> Optional[Dict[str, Any]]:
    """
    Give the judge one match to score.

    Returns the in-flight assignment when one exists, otherwise assigns
    the first eligible candidate. Returns None when nothing is eligible.
    """
    now = resolve_now(now)

    in_flight = await find_in_flight_assignment(db, judge_id)
    if in_flight:
        assignment, match, round_obj = in_flight
        logger.info(f"Judge {judge_id} resumed assignment {assignment.id} on match {match.id}")
        return _assignment_view(assignment, match, round_obj)

    result = await db.execute(_eligible_matches_query(judge_id, now).limit(1))
    row = result.first()
    if not row:
        logger.info(f"No eligible match for judge {judge_id}")
        return None

    match, round_obj = row[0], row[1]
    try:
        assignment = await _upsert_assignment(db, judge_id, match.id, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Judge {judge_id} assigned to match {match.id} (round {round_obj.id})")
    return _assignment_view(assignment, match, round_obj)


async def list_available_matches(
    db: AsyncSession,
    judge_id: int,
    limit: Optional[int] = None,
    now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Eligible candidates in assignment order, without assigning anything."""
    now = resolve_now(now)
    if limit is None:
        limit = settings.JUDGE_AVAILABLE_LIMIT

    track_count = (
        select(func.count(MatchTrack.id))
        .where(MatchTrack.match_id == Match.id)
        .correlate(Match)
        .scalar_subquery()
    )
    query = _eligible_matches_query(judge_id, now).add_columns(track_count.label("track_count"))
    result = await db.execute(query.limit(limit))

    return [
        {
            "match_id": match.id,
            "status": match.status.value,
            "starts_at": match.starts_at.isoformat() if match.starts_at else None,
            "track_count": count,
            "round": {
                "id": round_obj.id,
                "tournament_id": round_obj.tournament_id,
                "kind": round_obj.kind.value,
                "number": round_obj.number,
                "scoring": round_obj.scoring.value,
            },
        }
        for match, round_obj, count in result.all()
    ]


# =============================================================================
# Manual assignment
# =============================================================================

async def assign_specific(
    db: AsyncSession,
    judge_id: int,
    match_id: int,
    now: Optional[datetime] = None,
    challenge_tournament_id: Optional[int] = None
) -> Dict[str, Any]:
    """
    Assign the judge to a chosen match.

    Matches of the ad-hoc challenge tournament skip the round-status and
    roster checks; every other check still applies.
    """
    now = resolve_now(now)
    if challenge_tournament_id is None:
        challenge_tournament_id = settings.CHALLENGE_TOURNAMENT_ID

    match, round_obj = await load_match_with_round(db, match_id)
    is_challenge = challenge_tournament_id is not None and round_obj.tournament_id == challenge_tournament_id

    if not is_challenge:
        if round_obj.status != RoundStatus.JUDGING:
            logger.warning(f"Manual assignment rejected: round {round_obj.id} is {round_obj.status.value}")
            raise AssignmentNotAllowedError(
                "Round is not open for judging",
                details={"round_id": round_obj.id, "round_status": round_obj.status.value},
            )
        if not await is_rostered(db, judge_id, round_obj.tournament_id):
            logger.warning(f"Manual assignment rejected: judge {judge_id} not on roster")
            raise NotAuthorizedError(
                "Judge is not on this tournament's roster",
                details={"judge_id": judge_id, "tournament_id": round_obj.tournament_id},
            )

    if deadline_passed(round_obj.judging_deadline_at, now):
        raise JudgingWindowClosedError(
            details={
                "round_id": round_obj.id,
                "judging_deadline_at": round_obj.judging_deadline_at.isoformat(),
            }
        )

    ensure_match_open(match)

    track_result = await db.execute(select(func.count(MatchTrack.id)).where(MatchTrack.match_id == match.id))
    if not track_result.scalar_one():
        raise AssignmentNotAllowedError("Match has no tracks to judge", details={"match_id": match.id})

    try:
        assignment = await _upsert_assignment(db, judge_id, match.id, now)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"Judge {judge_id} manually assigned to match {match.id}")
    return _assignment_view(assignment, match, round_obj)


# =============================================================================
# Assignment status
# =============================================================================

JUDGE_SETTABLE_STATUSES = (AssignmentStatus.COMPLETED, AssignmentStatus.SKIPPED)


async def update_assignment_status(
    db: AsyncSession,
    judge_id: int,
    assignment_id: int,
    new_status: AssignmentStatus
) -> Dict[str, Any]:
    """
    Judge-initiated assigned -> completed | skipped.

    Only the owning judge can write; the UPDATE is conditioned on judge_id.
    Does not trigger finalization.
    """
    if not isinstance(new_status, AssignmentStatus):
        try:
            new_status = AssignmentStatus(new_status)
        except ValueError:
            raise ValidationFailedError(
                f"Unknown assignment status '{new_status}'",
                details={"allowed": [s.value for s in JUDGE_SETTABLE_STATUSES]},
            )
    if new_status not in JUDGE_SETTABLE_STATUSES:
        raise ValidationFailedError(
            f"Judges cannot set assignment status '{new_status.value}'",
            details={"allowed": [s.value for s in JUDGE_SETTABLE_STATUSES]},
        )

    result = await db.execute(
        select(JudgeAssignment, Match, Round)
        .join(Match, Match.id == JudgeAssignment.match_id)
        .join(Round, Round.id == Match.round_id)
        .where(JudgeAssignment.id == assignment_id, JudgeAssignment.judge_id == judge_id)
    )
    row = result.first()
    if not row:
        raise AssignmentNotFoundError(details={"assignment_id": assignment_id})
    assignment, match, round_obj = row[0], row[1], row[2]

    ensure_match_open(match)

    try:
        update_result = await db.execute(
            update(JudgeAssignment)
            .where(JudgeAssignment.id == assignment_id, JudgeAssignment.judge_id == judge_id)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        if update_result.rowcount == 0:
            raise AssignmentNotFoundError(details={"assignment_id": assignment_id})
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(assignment)
    logger.info(f"Assignment {assignment_id} -> {new_status.value} by judge {judge_id}")
    return _assignment_view(assignment, match, round_obj)


async def list_judge_assignments(db: AsyncSession, judge_id: int) -> List[Dict[str, Any]]:
    """All assignments for a judge, newest first."""
    result = await db.execute(
        select(JudgeAssignment, Match, Round)
        .join(Match, Match.id == JudgeAssignment.match_id)
        .join(Round, Round.id == Match.round_id)
        .where(JudgeAssignment.judge_id == judge_id)
        .order_by(JudgeAssignment.assigned_at.desc(), JudgeAssignment.id.desc())
    )
    return [_assignment_view(a, m, r) for a, m, r in result.all()]
