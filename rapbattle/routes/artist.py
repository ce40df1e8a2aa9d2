"""
Artist API Routes.

Uploads of qualifier submissions and match tracks. The caller must own
the participant entry they write for.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.database import get_db
from rapbattle.errors import NotFoundError
from rapbattle.rbac import Actor, ActorRole, require_role
from rapbattle.schemas.artist import MatchTrackRequest, SubmissionRequest
from rapbattle.services import submission_service

router = APIRouter(prefix="/api/artist", tags=["artist"])

artist_only = require_role([ActorRole.ARTIST])


@router.post("/rounds/{round_id}/submissions")
async def create_or_update_submission(
    round_id: int,
    request: SubmissionRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(artist_only)
):
    """
    Create or replace the caller's draft submission for a qualifier round.

    **Roles:** Artist
    """
    participant_id = await submission_service.find_participant_for_round(db, actor.id, round_id)
    if participant_id is None:
        raise NotFoundError("Caller is not registered in this round's tournament")

    submission = await submission_service.create_or_update_submission(
        db,
        round_id=round_id,
        participant_id=participant_id,
        audio_id=request.audio_id,
        lyrics=request.lyrics,
        actor_user_id=actor.id,
    )
    return {"success": True, "submission": submission.to_dict()}


@router.post("/submissions/{submission_id}/submit")
async def submit_submission(
    submission_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(artist_only)
):
    """
    Move a draft submission to submitted.

    **Roles:** Artist (owner only)
    """
    submission = await submission_service.submit_submission(db, submission_id, actor_user_id=actor.id)
    return {"success": True, "submission": submission.to_dict()}


@router.post("/matches/{match_id}/participants/{participant_id}/track")
async def submit_match_track(
    match_id: int,
    participant_id: int,
    request: MatchTrackRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(artist_only)
):
    """
    Upload or replace the caller's track for a match.

    **Roles:** Artist (owner only)
    """
    track = await submission_service.submit_match_track(
        db,
        match_id=match_id,
        participant_id=participant_id,
        audio_id=request.audio_id,
        lyrics=request.lyrics,
        actor_user_id=actor.id,
    )
    return {"success": True, "track": track.to_dict()}
