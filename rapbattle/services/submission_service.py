"""
Submission Service

Artist-side writes:
- Qualifier submissions (one per participant per round)
- Match tracks (one per participant per match)

Guards applied before any write: elimination, media readiness,
submission window, match state.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.core.db_types import upsert_insert
from rapbattle.core.time import resolve_now
from rapbattle.errors import (
    MediaNotReadyError, NotAuthorizedError, NotFoundError, ParticipantEliminatedError,
    StateGuardError, ValidationFailedError,
)
from rapbattle.orm.match import Match, MatchParticipant, MatchTrack, ParticipantResult
from rapbattle.orm.media import MediaAsset
from rapbattle.orm.round import Round
from rapbattle.orm.submission import QualifierResult, Submission, SubmissionStatus
from rapbattle.orm.tournament import TournamentParticipant
from rapbattle.state_machines.lifecycle import ensure_match_open, ensure_submission_window

logger = logging.getLogger(__name__)


# =============================================================================
# Guards
# =============================================================================

async def is_eliminated(db: AsyncSession, participant_id: int) -> bool:
    """Eliminated in a bracket match or in a qualifier round."""
    bracket = await db.execute(
        select(MatchParticipant.id)
        .where(
            MatchParticipant.participant_id == participant_id,
            MatchParticipant.result_status == ParticipantResult.ELIMINATED,
        )
        .limit(1)
    )
    if bracket.scalar_one_or_none() is not None:
        return True

    qualifier = await db.execute(
        select(Submission.id)
        .where(
            Submission.participant_id == participant_id,
            Submission.result_status == QualifierResult.ELIMINATED,
        )
        .limit(1)
    )
    return qualifier.scalar_one_or_none() is not None


async def ensure_not_eliminated(db: AsyncSession, participant_id: int) -> None:
    if await is_eliminated(db, participant_id):
        logger.warning(f"Upload rejected: participant {participant_id} is eliminated")
        raise ParticipantEliminatedError(details={"participant_id": participant_id})


async def ensure_media_ready(db: AsyncSession, audio_id: int, owner_id: Optional[int] = None) -> MediaAsset:
    result = await db.execute(select(MediaAsset).where(MediaAsset.id == audio_id))
    asset = result.scalar_one_or_none()
    if not asset:
        raise NotFoundError.for_resource("MediaAsset", audio_id)
    if owner_id is not None and asset.owner_id != owner_id:
        raise NotAuthorizedError("Media asset belongs to another user", details={"audio_id": audio_id})
    if not asset.is_ready:
        raise MediaNotReadyError(details={"audio_id": audio_id, "media_status": asset.status.value})
    return asset


async def _load_participant(
    db: AsyncSession,
    participant_id: int,
    tournament_id: int,
    actor_user_id: Optional[int]
) -> TournamentParticipant:
    result = await db.execute(
        select(TournamentParticipant).where(TournamentParticipant.id == participant_id)
    )
    participant = result.scalar_one_or_none()
    if not participant or participant.tournament_id != tournament_id:
        raise NotFoundError.for_resource("Participant", participant_id)
    if actor_user_id is not None and participant.user_id != actor_user_id:
        raise NotAuthorizedError(
            "Actor does not own this participant entry",
            details={"participant_id": participant_id},
        )
    return participant


async def find_participant_for_round(db: AsyncSession, user_id: int, round_id: int) -> Optional[int]:
    """The caller's participant id in the round's tournament, if registered."""
    result = await db.execute(
        select(TournamentParticipant.id)
        .join(Round, Round.tournament_id == TournamentParticipant.tournament_id)
        .where(TournamentParticipant.user_id == user_id, Round.id == round_id)
    )
    return result.scalar_one_or_none()


# =============================================================================
# Qualifier submissions
# =============================================================================

LOCKED_SUBMISSION_STATUSES = (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED)


async def create_or_update_submission(
    db: AsyncSession,
    round_id: int,
    participant_id: int,
    audio_id: int,
    lyrics: Optional[str] = None,
    actor_user_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> Submission:
    """
    Upsert the participant's single submission for a qualifier round.

    New rows start as draft. Re-uploads replace audio and lyrics; the
    status is left untouched. Moderated submissions are locked.
    """
    now = resolve_now(now)

    result = await db.execute(select(Round).where(Round.id == round_id))
    round_obj = result.scalar_one_or_none()
    if not round_obj:
        raise NotFoundError.for_resource("Round", round_id)
    if not round_obj.is_qualifier:
        raise ValidationFailedError(
            "Submissions are only accepted in qualifier rounds",
            details={"round_id": round_id, "kind": round_obj.kind.value},
        )

    participant = await _load_participant(db, participant_id, round_obj.tournament_id, actor_user_id)
    await ensure_not_eliminated(db, participant.id)
    await ensure_media_ready(db, audio_id, owner_id=participant.user_id)
    ensure_submission_window(round_obj, now)

    existing = await db.execute(
        select(Submission.status).where(
            Submission.round_id == round_id,
            Submission.participant_id == participant_id,
        )
    )
    current_status = existing.scalar_one_or_none()
    if current_status in LOCKED_SUBMISSION_STATUSES:
        raise StateGuardError(
            "Submission has already been moderated",
            details={"round_id": round_id, "status": current_status.value},
        )

    table = Submission.__table__
    stmt = upsert_insert(db, table).values(
        round_id=round_id,
        participant_id=participant_id,
        audio_id=audio_id,
        lyrics=lyrics,
        status=SubmissionStatus.DRAFT,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.round_id, table.c.participant_id],
        set_={
            "audio_id": stmt.excluded.audio_id,
            "lyrics": stmt.excluded.lyrics,
            "updated_at": stmt.excluded.updated_at,
        },
    )

    try:
        await db.execute(stmt)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result = await db.execute(
        select(Submission)
        .where(Submission.round_id == round_id, Submission.participant_id == participant_id)
        .execution_options(populate_existing=True)
    )
    submission = result.scalar_one()
    logger.info(f"Submission {submission.id} saved for participant {participant_id} in round {round_id}")
    return submission


async def submit_submission(
    db: AsyncSession,
    submission_id: int,
    actor_user_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> Submission:
    """draft -> submitted. submitted_at is stamped once and kept on re-submit."""
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

    await _load_participant(db, submission.participant_id, round_obj.tournament_id, actor_user_id)
    await ensure_not_eliminated(db, submission.participant_id)
    ensure_submission_window(round_obj, now)

    if submission.status in LOCKED_SUBMISSION_STATUSES:
        raise StateGuardError(
            "Submission has already been moderated",
            details={"submission_id": submission_id, "status": submission.status.value},
        )

    try:
        await db.execute(
            update(Submission)
            .where(Submission.id == submission_id)
            .values(
                status=SubmissionStatus.SUBMITTED,
                submitted_at=submission.submitted_at or now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(submission)
    logger.info(f"Submission {submission_id} submitted")
    return submission


# =============================================================================
# Match tracks
# =============================================================================

async def _load_match_for_track(db: AsyncSession, match_id: int) -> Tuple[Match, Round]:
    result = await db.execute(
        select(Match, Round)
        .join(Round, Round.id == Match.round_id)
        .where(Match.id == match_id)
    )
    row = result.one_or_none()
    if not row:
        raise NotFoundError.for_resource("Match", match_id)
    return row[0], row[1]


async def submit_match_track(
    db: AsyncSession,
    match_id: int,
    participant_id: int,
    audio_id: int,
    lyrics: Optional[str] = None,
    actor_user_id: Optional[int] = None,
    now: Optional[datetime] = None
) -> MatchTrack:
    """Upsert the participant's single track for a match."""
    now = resolve_now(now)

    match, round_obj = await _load_match_for_track(db, match_id)
    participant = await _load_participant(db, participant_id, round_obj.tournament_id, actor_user_id)

    seat = await db.execute(
        select(MatchParticipant.id).where(
            MatchParticipant.match_id == match_id,
            MatchParticipant.participant_id == participant_id,
        )
    )
    if seat.scalar_one_or_none() is None:
        raise NotAuthorizedError(
            "Participant is not in this match",
            details={"match_id": match_id, "participant_id": participant_id},
        )

    await ensure_not_eliminated(db, participant.id)
    await ensure_media_ready(db, audio_id, owner_id=participant.user_id)
    ensure_match_open(match)
    ensure_submission_window(round_obj, now)

    table = MatchTrack.__table__
    stmt = upsert_insert(db, table).values(
        match_id=match_id,
        participant_id=participant_id,
        audio_id=audio_id,
        lyrics=lyrics,
        submitted_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.match_id, table.c.participant_id],
        set_={
            "audio_id": stmt.excluded.audio_id,
            "lyrics": stmt.excluded.lyrics,
            "submitted_at": stmt.excluded.submitted_at,
        },
    )

    try:
        await db.execute(stmt)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    result = await db.execute(
        select(MatchTrack)
        .where(MatchTrack.match_id == match_id, MatchTrack.participant_id == participant_id)
        .execution_options(populate_existing=True)
    )
    track = result.scalar_one()
    logger.info(f"Track {track.id} saved for participant {participant_id} in match {match_id}")
    return track
