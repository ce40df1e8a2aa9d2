"""
Admin API Routes.

Lifecycle transitions, finalization and read-view refresh.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.database import get_db
from rapbattle.rbac import Actor, ActorRole, require_role
from rapbattle.schemas.admin import (
    FinalizeMatchRequest, FinalizeQualifierRequest, MatchTransitionRequest,
    RoundTransitionRequest, TournamentTransitionRequest,
)
from rapbattle.services import finalization_service, leaderboard_service, overview_service
from rapbattle.state_machines.lifecycle import LifecycleStateMachine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

admin_only = require_role([ActorRole.ADMIN])


# =============================================================================
# Transitions
# =============================================================================

@router.post("/tournaments/{tournament_id}/transition")
async def transition_tournament(
    tournament_id: int,
    request: TournamentTransitionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Advance a tournament one step.

    **Roles:** Admin
    """
    tournament = await LifecycleStateMachine.transition_tournament(db, tournament_id, request.new_status)
    logger.info(f"Admin {actor.id} moved tournament {tournament_id} to {request.new_status.value}")
    return {"success": True, "tournament": tournament.to_dict()}


@router.post("/rounds/{round_id}/transition")
async def transition_round(
    round_id: int,
    request: RoundTransitionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Advance a round one step; lagging matches follow.

    **Roles:** Admin
    """
    round_obj = await LifecycleStateMachine.transition_round(db, round_id, request.new_status)
    logger.info(f"Admin {actor.id} moved round {round_id} to {request.new_status.value}")
    return {"success": True, "round": round_obj.to_dict()}


@router.post("/matches/{match_id}/transition")
async def transition_match(
    match_id: int,
    request: MatchTransitionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Move a match forward or cancel it. finished / tie come from finalize only.

    **Roles:** Admin
    """
    match = await LifecycleStateMachine.transition_match(db, match_id, request.new_status)
    logger.info(f"Admin {actor.id} moved match {match_id} to {request.new_status.value}")
    return {"success": True, "match": match.to_dict()}


# =============================================================================
# Finalization
# =============================================================================

@router.post("/matches/{match_id}/finalize")
async def finalize_match(
    match_id: int,
    request: Optional[FinalizeMatchRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Decide a match and refresh the leaderboards.

    **Roles:** Admin
    """
    request = request or FinalizeMatchRequest()
    result = await finalization_service.finalize_match(
        db, match_id, eliminate_losers=request.eliminate_losers
    )
    logger.info(f"Admin {actor.id} finalized match {match_id}")
    return {"success": True, **result}


@router.post("/rounds/{round_id}/finalize-qualifier")
async def finalize_qualifier_round(
    round_id: int,
    request: Optional[FinalizeQualifierRequest] = None,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Advance or eliminate every approved submission of a qualifier round.

    **Roles:** Admin
    """
    request = request or FinalizeQualifierRequest()
    result = await finalization_service.finalize_qualifier_round(db, round_id, threshold=request.threshold)
    logger.info(f"Admin {actor.id} finalized qualifier round {round_id}")
    return {"success": True, **result}


@router.post("/views/refresh")
async def refresh_views(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Rebuild the track-score and leaderboard views.

    **Roles:** Admin
    """
    counts = await leaderboard_service.refresh_leaderboards(db)
    return {"success": True, **counts}


@router.get("/rounds/{round_id}/overview")
async def admin_round_overview(
    round_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(admin_only)
):
    """
    Round overview (results gated the same way as the public view).

    **Roles:** Admin
    """
    overview = await overview_service.get_round_overview(db, round_id)
    return {"success": True, **overview}
