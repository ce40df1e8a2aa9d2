"""
Judge API Routes.

Thin adapters over the assignment scheduler and evaluation store.
All routes require the judge role; the acting judge is always the caller.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.database import get_db
from rapbattle.rbac import Actor, ActorRole, require_role
from rapbattle.schemas.judging import AssignmentStatusRequest, MatchScoreRequest, SubmissionScoreRequest
from rapbattle.services import assignment_service, evaluation_service

router = APIRouter(prefix="/api/judge", tags=["judge"])

judge_only = require_role([ActorRole.JUDGE])


# =============================================================================
# Assignments
# =============================================================================

@router.get("/assignments")
async def list_assignments(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    List the caller's assignments, newest first.

    **Roles:** Judge
    """
    assignments = await assignment_service.list_judge_assignments(db, actor.id)
    return {"success": True, "assignments": assignments}


@router.post("/assignments/next")
async def assign_next(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Resume the in-flight assignment or take the next eligible match.

    **Roles:** Judge

    Returns 204 when nothing is eligible.
    """
    assignment = await assignment_service.assign_next(db, actor.id)
    if assignment is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return {"success": True, "assignment": assignment}


@router.post("/matches/{match_id}/assign")
async def assign_specific(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Take a specific match.

    **Roles:** Judge
    """
    assignment = await assignment_service.assign_specific(db, actor.id, match_id)
    return {"success": True, "assignment": assignment}


@router.patch("/assignments/{assignment_id}")
async def update_assignment_status(
    assignment_id: int,
    request: AssignmentStatusRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Mark an assignment completed or skipped.

    **Roles:** Judge (owner only)
    """
    assignment = await assignment_service.update_assignment_status(
        db, actor.id, assignment_id, request.status
    )
    return {"success": True, "assignment": assignment}


# =============================================================================
# Matches
# =============================================================================

@router.get("/matches/available")
async def list_available_matches(
    limit: Optional[int] = Query(default=None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Matches the caller could be assigned, in assignment order.

    **Roles:** Judge
    """
    matches = await assignment_service.list_available_matches(db, actor.id, limit=limit)
    return {"success": True, "matches": matches}


@router.get("/matches/{match_id}")
async def get_match_details(
    match_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Match detail for scoring: participants, tracks, rubric, own evaluation.

    **Roles:** Judge (assigned or rostered)
    """
    details = await evaluation_service.get_judge_match_details(db, actor.id, match_id)
    return {"success": True, **details}


@router.post("/matches/{match_id}/score")
async def score_match(
    match_id: int,
    request: MatchScoreRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Submit or overwrite the caller's evaluation of a match.

    **Roles:** Judge (assigned or rostered)
    """
    evaluation = await evaluation_service.submit_match_evaluation(
        db,
        judge_id=actor.id,
        match_id=match_id,
        tracks=[line.to_payload() for line in request.tracks],
        comment=request.comment,
    )
    return {"success": True, "evaluation": evaluation}


@router.post("/submissions/{submission_id}/score")
async def score_submission(
    submission_id: int,
    request: SubmissionScoreRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    Submit or overwrite the caller's evaluation of a qualifier submission.

    **Roles:** Judge (rostered)
    """
    evaluation = await evaluation_service.submit_submission_evaluation(
        db,
        judge_id=actor.id,
        submission_id=submission_id,
        passed=request.passed,
        score=request.score,
        rubric=request.rubric,
        comment=request.comment,
    )
    return {"success": True, "evaluation": evaluation}


@router.get("/history")
async def judge_history(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(judge_only)
):
    """
    The caller's latest evaluations.

    **Roles:** Judge
    """
    evaluations = await evaluation_service.list_judge_history(db, actor.id)
    return {"success": True, "evaluations": evaluations}
