"""
Submission Service Tests

Qualifier submissions and match tracks, with the guards that run
before any write.
"""
from datetime import timedelta

import pytest
from sqlalchemy import update

from rapbattle.errors import (
    MediaNotReadyError, NotAuthorizedError, ParticipantEliminatedError, StateGuardError,
    SubmissionDeadlinePassedError, SubmissionWindowClosedError, ValidationFailedError,
)
from rapbattle.orm.match import MatchParticipant, MatchStatus, ParticipantResult
from rapbattle.orm.media import MediaStatus
from rapbattle.orm.round import RoundKind, RoundScoring, RoundStatus
from rapbattle.orm.submission import QualifierResult, SubmissionStatus
from rapbattle.services import submission_service
from rapbattle.tests.factories import (
    LATER, NOW, make_match, make_media, make_participant, make_round, make_submission, make_tournament,
)

ARTIST = 7


@pytest.fixture
def qualifier(db_session):
    """Open qualifier round and one registered artist."""
    async def build(**round_kwargs):
        round_kwargs.setdefault("status", RoundStatus.SUBMISSION)
        round_kwargs.setdefault("submission_deadline_at", LATER)
        tournament = await make_tournament(db_session)
        round_obj = await make_round(
            db_session, tournament, kind=RoundKind.QUALIFIER1, scoring=RoundScoring.PASS_FAIL, **round_kwargs
        )
        participant = await make_participant(db_session, tournament, user_id=ARTIST)
        return tournament, round_obj, participant
    return build


# =============================================================================
# Qualifier submissions
# =============================================================================

class TestQualifierSubmission:

    @pytest.mark.asyncio
    async def test_create_then_reupload(self, db_session, qualifier):
        _, round_obj, participant = await qualifier()
        first_media = await make_media(db_session, ARTIST)
        second_media = await make_media(db_session, ARTIST)

        created = await submission_service.create_or_update_submission(
            db_session, round_obj.id, participant.id, first_media.id, lyrics="v1", actor_user_id=ARTIST, now=NOW
        )
        assert created.status == SubmissionStatus.DRAFT

        updated = await submission_service.create_or_update_submission(
            db_session, round_obj.id, participant.id, second_media.id, lyrics="v2", actor_user_id=ARTIST, now=NOW
        )
        assert updated.id == created.id
        assert updated.audio_id == second_media.id
        assert updated.lyrics == "v2"

    @pytest.mark.asyncio
    async def test_submit_stamps_once_and_reupload_keeps_status(self, db_session, qualifier):
        _, round_obj, participant = await qualifier()
        media = await make_media(db_session, ARTIST)
        submission = await submission_service.create_or_update_submission(
            db_session, round_obj.id, participant.id, media.id, now=NOW
        )

        submitted = await submission_service.submit_submission(db_session, submission.id, ARTIST, now=NOW)
        assert submitted.status == SubmissionStatus.SUBMITTED
        assert submitted.submitted_at == NOW

        again = await submission_service.submit_submission(
            db_session, submission.id, ARTIST, now=NOW + timedelta(hours=1)
        )
        assert again.submitted_at == NOW

        reuploaded = await submission_service.create_or_update_submission(
            db_session, round_obj.id, participant.id, media.id, lyrics="fixed", now=NOW
        )
        assert reuploaded.status == SubmissionStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_moderated_submission_locked(self, db_session, qualifier):
        _, round_obj, participant = await qualifier()
        existing = await make_submission(db_session, round_obj, participant, status=SubmissionStatus.APPROVED)

        with pytest.raises(StateGuardError):
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, existing.audio_id, now=NOW
            )

    @pytest.mark.asyncio
    async def test_bracket_round_rejects_submissions(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, status=RoundStatus.SUBMISSION)
        participant = await make_participant(db_session, tournament, user_id=ARTIST)
        media = await make_media(db_session, ARTIST)

        with pytest.raises(ValidationFailedError):
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, media.id, now=NOW
            )

    @pytest.mark.asyncio
    async def test_round_not_open_for_submissions(self, db_session, qualifier):
        _, judging_round, participant = await qualifier(status=RoundStatus.JUDGING)
        media = await make_media(db_session, ARTIST)

        with pytest.raises(SubmissionWindowClosedError) as exc_info:
            await submission_service.create_or_update_submission(
                db_session, judging_round.id, participant.id, media.id, now=NOW
            )
        assert exc_info.value.code == "submission_window_closed"

    @pytest.mark.asyncio
    async def test_deadline_passed(self, db_session, qualifier):
        _, round_obj, participant = await qualifier(submission_deadline_at=NOW)
        media = await make_media(db_session, ARTIST)

        with pytest.raises(SubmissionDeadlinePassedError) as exc_info:
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, media.id, now=NOW + timedelta(seconds=1)
            )
        assert exc_info.value.code == "submission_deadline_passed"

    @pytest.mark.asyncio
    async def test_media_must_be_ready_and_owned(self, db_session, qualifier):
        _, round_obj, participant = await qualifier()
        pending = await make_media(db_session, ARTIST, status=MediaStatus.VERIFYING)
        foreign = await make_media(db_session, ARTIST + 1)

        with pytest.raises(MediaNotReadyError):
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, pending.id, now=NOW
            )
        with pytest.raises(NotAuthorizedError):
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, foreign.id, now=NOW
            )

    @pytest.mark.asyncio
    async def test_actor_must_own_participant(self, db_session, qualifier):
        _, round_obj, participant = await qualifier()
        media = await make_media(db_session, ARTIST)

        with pytest.raises(NotAuthorizedError):
            await submission_service.create_or_update_submission(
                db_session, round_obj.id, participant.id, media.id, actor_user_id=ARTIST + 1, now=NOW
            )

    @pytest.mark.asyncio
    async def test_eliminated_in_earlier_qualifier(self, db_session, qualifier):
        tournament, round_one, participant = await qualifier(status=RoundStatus.FINISHED)
        earlier = await make_submission(db_session, round_one, participant)
        earlier.result_status = QualifierResult.ELIMINATED
        await db_session.commit()

        round_two = await make_round(
            db_session, tournament, kind=RoundKind.QUALIFIER2, scoring=RoundScoring.POINTS,
            status=RoundStatus.SUBMISSION, number=2,
        )
        media = await make_media(db_session, ARTIST)

        with pytest.raises(ParticipantEliminatedError):
            await submission_service.create_or_update_submission(
                db_session, round_two.id, participant.id, media.id, now=NOW
            )


# =============================================================================
# Match tracks
# =============================================================================

class TestMatchTrack:

    async def _bracket(self, db, status=RoundStatus.SUBMISSION, match_status=MatchStatus.SUBMISSION):
        tournament = await make_tournament(db)
        round_obj = await make_round(db, tournament, status=status, submission_deadline_at=LATER)
        a = await make_participant(db, tournament, user_id=ARTIST)
        b = await make_participant(db, tournament, user_id=ARTIST + 1)
        match = await make_match(db, round_obj, [a, b], status=match_status)
        return tournament, match, a, b

    @pytest.mark.asyncio
    async def test_upload_and_replace(self, db_session):
        _, match, a, _ = await self._bracket(db_session)
        first = await make_media(db_session, ARTIST)
        second = await make_media(db_session, ARTIST)

        track = await submission_service.submit_match_track(
            db_session, match.id, a.id, first.id, actor_user_id=ARTIST, now=NOW
        )
        replaced = await submission_service.submit_match_track(
            db_session, match.id, a.id, second.id, lyrics="bars", actor_user_id=ARTIST, now=NOW
        )
        assert replaced.id == track.id
        assert replaced.audio_id == second.id
        assert replaced.lyrics == "bars"

    @pytest.mark.asyncio
    async def test_participant_must_hold_a_seat(self, db_session):
        tournament, match, _, _ = await self._bracket(db_session)
        outsider = await make_participant(db_session, tournament, user_id=ARTIST + 5)
        media = await make_media(db_session, ARTIST + 5)

        with pytest.raises(NotAuthorizedError):
            await submission_service.submit_match_track(db_session, match.id, outsider.id, media.id, now=NOW)

    @pytest.mark.asyncio
    async def test_bracket_eliminated_participant_blocked(self, db_session):
        _, match, a, _ = await self._bracket(db_session)
        await db_session.execute(
            update(MatchParticipant)
            .where(MatchParticipant.participant_id == a.id)
            .values(result_status=ParticipantResult.ELIMINATED)
        )
        await db_session.commit()
        media = await make_media(db_session, ARTIST)

        with pytest.raises(ParticipantEliminatedError):
            await submission_service.submit_match_track(db_session, match.id, a.id, media.id, now=NOW)

    @pytest.mark.asyncio
    async def test_decided_match_blocked(self, db_session):
        _, match, a, _ = await self._bracket(db_session, match_status=MatchStatus.TIE)
        media = await make_media(db_session, ARTIST)

        with pytest.raises(StateGuardError):
            await submission_service.submit_match_track(db_session, match.id, a.id, media.id, now=NOW)

    @pytest.mark.asyncio
    async def test_judging_round_blocks_uploads(self, db_session):
        _, match, a, _ = await self._bracket(
            db_session, status=RoundStatus.JUDGING, match_status=MatchStatus.JUDGING
        )
        media = await make_media(db_session, ARTIST)

        with pytest.raises(SubmissionWindowClosedError):
            await submission_service.submit_match_track(db_session, match.id, a.id, media.id, now=NOW)
