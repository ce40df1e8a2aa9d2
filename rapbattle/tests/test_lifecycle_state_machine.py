"""
Lifecycle State Machine Tests

Forward-only transitions, round-to-match cascade and window guards.
"""
import pytest
from sqlalchemy import select

from rapbattle.errors import (
    InvalidTransitionError, JudgingWindowClosedError, MatchAlreadyFinalizedError,
    MatchClosedError, NotFoundError, SubmissionDeadlinePassedError, SubmissionWindowClosedError,
)
from rapbattle.orm.match import Match, MatchStatus
from rapbattle.orm.round import RoundKind, RoundScoring, RoundStatus
from rapbattle.orm.tournament import TournamentStatus
from rapbattle.state_machines.lifecycle import (
    LifecycleStateMachine, ensure_judging_window, ensure_match_open, ensure_submission_window,
)
from rapbattle.tests.factories import EARLIER, LATER, NOW, make_match, make_participant, make_round, make_tournament


async def _reload_match(db, match_id):
    result = await db.execute(
        select(Match).where(Match.id == match_id).execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# Tournament
# =============================================================================

class TestTournamentTransitions:

    @pytest.mark.asyncio
    async def test_forward_steps(self, db_session):
        tournament = await make_tournament(db_session, status=TournamentStatus.DRAFT)

        tournament = await LifecycleStateMachine.transition_tournament(
            db_session, tournament.id, TournamentStatus.REGISTRATION
        )
        assert tournament.status == TournamentStatus.REGISTRATION

        tournament = await LifecycleStateMachine.transition_tournament(
            db_session, tournament.id, TournamentStatus.ONGOING
        )
        assert tournament.status == TournamentStatus.ONGOING

    @pytest.mark.asyncio
    async def test_skipping_a_step_rejected(self, db_session):
        tournament = await make_tournament(db_session, status=TournamentStatus.DRAFT)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await LifecycleStateMachine.transition_tournament(db_session, tournament.id, TournamentStatus.ONGOING)
        assert exc_info.value.details["allowed"] == ["registration"]

    @pytest.mark.asyncio
    async def test_archived_is_terminal(self, db_session):
        tournament = await make_tournament(db_session, status=TournamentStatus.ARCHIVED)

        with pytest.raises(InvalidTransitionError):
            await LifecycleStateMachine.transition_tournament(db_session, tournament.id, TournamentStatus.DRAFT)

    @pytest.mark.asyncio
    async def test_unknown_tournament(self, db_session):
        with pytest.raises(NotFoundError):
            await LifecycleStateMachine.transition_tournament(db_session, 999, TournamentStatus.REGISTRATION)


# =============================================================================
# Round
# =============================================================================

class TestRoundTransitions:

    @pytest.mark.asyncio
    async def test_backwards_rejected(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, status=RoundStatus.JUDGING)

        with pytest.raises(InvalidTransitionError):
            await LifecycleStateMachine.transition_round(db_session, round_obj.id, RoundStatus.SUBMISSION)

    @pytest.mark.asyncio
    async def test_matches_follow_round_forward(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, status=RoundStatus.SUBMISSION)
        a = await make_participant(db_session, tournament, user_id=1)
        b = await make_participant(db_session, tournament, user_id=2)
        behind = await make_match(db_session, round_obj, [a, b], status=MatchStatus.SUBMISSION)
        cancelled = await make_match(db_session, round_obj, [a, b], status=MatchStatus.CANCELLED)

        round_obj = await LifecycleStateMachine.transition_round(db_session, round_obj.id, RoundStatus.JUDGING)
        assert round_obj.status == RoundStatus.JUDGING

        assert (await _reload_match(db_session, behind.id)).status == MatchStatus.JUDGING
        assert (await _reload_match(db_session, cancelled.id)).status == MatchStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_finishing_round_leaves_matches_alone(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, status=RoundStatus.JUDGING)
        a = await make_participant(db_session, tournament, user_id=1)
        b = await make_participant(db_session, tournament, user_id=2)
        match = await make_match(db_session, round_obj, [a, b], status=MatchStatus.JUDGING)

        await LifecycleStateMachine.transition_round(db_session, round_obj.id, RoundStatus.FINISHED)

        assert (await _reload_match(db_session, match.id)).status == MatchStatus.JUDGING


# =============================================================================
# Match
# =============================================================================

class TestMatchTransitions:

    @pytest.mark.asyncio
    async def test_finished_only_through_finalization(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament)
        a = await make_participant(db_session, tournament, user_id=1)
        match = await make_match(db_session, round_obj, [a])

        for target in (MatchStatus.FINISHED, MatchStatus.TIE):
            with pytest.raises(InvalidTransitionError):
                await LifecycleStateMachine.transition_match(db_session, match.id, target)

    @pytest.mark.asyncio
    async def test_cancel_then_nothing(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament)
        a = await make_participant(db_session, tournament, user_id=1)
        match = await make_match(db_session, round_obj, [a], status=MatchStatus.SCHEDULED)

        match = await LifecycleStateMachine.transition_match(db_session, match.id, MatchStatus.CANCELLED)
        assert match.status == MatchStatus.CANCELLED

        with pytest.raises(MatchClosedError):
            await LifecycleStateMachine.transition_match(db_session, match.id, MatchStatus.SUBMISSION)

    @pytest.mark.asyncio
    async def test_decided_match_is_closed(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament)
        a = await make_participant(db_session, tournament, user_id=1)
        match = await make_match(db_session, round_obj, [a], status=MatchStatus.TIE)

        with pytest.raises(MatchAlreadyFinalizedError):
            await LifecycleStateMachine.transition_match(db_session, match.id, MatchStatus.CANCELLED)


# =============================================================================
# Guards
# =============================================================================

class TestWindowGuards:

    @pytest.mark.asyncio
    async def test_submission_window(self, db_session):
        tournament = await make_tournament(db_session)
        open_round = await make_round(
            db_session, tournament, kind=RoundKind.QUALIFIER1, scoring=RoundScoring.PASS_FAIL,
            status=RoundStatus.SUBMISSION, submission_deadline_at=LATER, number=1,
        )
        ensure_submission_window(open_round, NOW)

        with pytest.raises(SubmissionDeadlinePassedError):
            ensure_submission_window(open_round, LATER.replace(year=2027))

        judging_round = await make_round(db_session, tournament, status=RoundStatus.JUDGING, number=2)
        with pytest.raises(SubmissionWindowClosedError) as exc_info:
            ensure_submission_window(judging_round, NOW)
        assert exc_info.value.code == "submission_window_closed"

    @pytest.mark.asyncio
    async def test_judging_window(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, judging_deadline_at=NOW)

        # deadline is inclusive
        ensure_judging_window(round_obj, NOW)

        with pytest.raises(JudgingWindowClosedError):
            ensure_judging_window(round_obj, LATER)

        past = await make_round(db_session, tournament, judging_deadline_at=EARLIER, number=2)
        with pytest.raises(JudgingWindowClosedError):
            ensure_judging_window(past, NOW)

    def test_open_match_passes(self):
        ensure_match_open(Match(id=1, status=MatchStatus.JUDGING))
