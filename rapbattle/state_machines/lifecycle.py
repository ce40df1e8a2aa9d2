"""
Tournament / Round / Match Lifecycle State Machine

Strict server-side state enforcement.

Rounds:  draft -> submission -> judging -> finished   (admin-driven, forward-only)
Matches: scheduled -> submission -> judging -> {finished | tie | cancelled}

finished / tie are reachable only through finalization. Deadlines never
change a status on their own; they are checked lazily by the guards below.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.core.time import resolve_now, window_open
from rapbattle.errors import (
    InvalidTransitionError, JudgingWindowClosedError, MatchAlreadyFinalizedError,
    MatchClosedError, NotFoundError, SubmissionDeadlinePassedError, SubmissionWindowClosedError,
)
from rapbattle.orm.match import DECIDED_MATCH_STATUSES, Match, MatchStatus
from rapbattle.orm.round import Round, RoundStatus
from rapbattle.orm.tournament import Tournament, TournamentStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Guards
# =============================================================================

def ensure_submission_window(round_obj: Round, now: Optional[datetime] = None) -> None:
    """Reject submission writes unless the round is open for submissions."""
    now = resolve_now(now)
    if round_obj.status != RoundStatus.SUBMISSION:
        logger.warning(f"Submission rejected: round {round_obj.id} is {round_obj.status.value}")
        raise SubmissionWindowClosedError(details={"round_id": round_obj.id, "round_status": round_obj.status.value})
    if not window_open(round_obj.submission_deadline_at, now):
        logger.warning(f"Submission rejected: round {round_obj.id} deadline passed")
        raise SubmissionDeadlinePassedError(
            details={
                "round_id": round_obj.id,
                "submission_deadline_at": round_obj.submission_deadline_at.isoformat(),
            }
        )


def judging_window_open(round_obj: Round, now: datetime) -> bool:
    return round_obj.status == RoundStatus.JUDGING and window_open(round_obj.judging_deadline_at, now)


def ensure_judging_window(round_obj: Round, now: Optional[datetime] = None) -> None:
    """Reject scoring writes unless the round is judging and its deadline has not passed."""
    now = resolve_now(now)
    if not judging_window_open(round_obj, now):
        logger.warning(f"Scoring rejected: round {round_obj.id} judging window closed")
        raise JudgingWindowClosedError(
            details={
                "round_id": round_obj.id,
                "round_status": round_obj.status.value,
                "judging_deadline_at": round_obj.judging_deadline_at.isoformat() if round_obj.judging_deadline_at else None,
            }
        )


def ensure_match_open(match: Match) -> None:
    """Terminal matches accept no further evaluation, assignment or track mutation."""
    if match.status in DECIDED_MATCH_STATUSES:
        raise MatchAlreadyFinalizedError(details={"match_id": match.id, "status": match.status.value})
    if match.is_terminal:
        raise MatchClosedError(details={"match_id": match.id, "status": match.status.value})


# =============================================================================
# Transitions
# =============================================================================

class LifecycleStateMachine:
    """
    Admin-driven forward-only transitions.

    All methods lock the row, validate against the transition table,
    and commit once.
    """

    TOURNAMENT_TRANSITIONS: Dict[TournamentStatus, List[TournamentStatus]] = {
        TournamentStatus.DRAFT: [TournamentStatus.REGISTRATION],
        TournamentStatus.REGISTRATION: [TournamentStatus.ONGOING],
        TournamentStatus.ONGOING: [TournamentStatus.COMPLETED],
        TournamentStatus.COMPLETED: [TournamentStatus.ARCHIVED],
        TournamentStatus.ARCHIVED: [],  # Terminal state
    }

    ROUND_TRANSITIONS: Dict[RoundStatus, List[RoundStatus]] = {
        RoundStatus.DRAFT: [RoundStatus.SUBMISSION],
        RoundStatus.SUBMISSION: [RoundStatus.JUDGING],
        RoundStatus.JUDGING: [RoundStatus.FINISHED],
        RoundStatus.FINISHED: [],
    }

    # finished / tie are written by finalization only
    MATCH_TRANSITIONS: Dict[MatchStatus, List[MatchStatus]] = {
        MatchStatus.SCHEDULED: [MatchStatus.SUBMISSION, MatchStatus.CANCELLED],
        MatchStatus.SUBMISSION: [MatchStatus.JUDGING, MatchStatus.CANCELLED],
        MatchStatus.JUDGING: [MatchStatus.CANCELLED],
        MatchStatus.FINISHED: [],
        MatchStatus.TIE: [],
        MatchStatus.CANCELLED: [],
    }

    # Matches follow their round forward when the round advances
    ROUND_CASCADE: Dict[RoundStatus, List[MatchStatus]] = {
        RoundStatus.SUBMISSION: [MatchStatus.SCHEDULED],
        RoundStatus.JUDGING: [MatchStatus.SCHEDULED, MatchStatus.SUBMISSION],
    }

    @staticmethod
    def _check(table: Dict, current, new) -> None:
        allowed = table.get(current, [])
        if new not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition from {current.value} to {new.value}",
                details={"from": current.value, "to": new.value, "allowed": [s.value for s in allowed]},
            )

    @staticmethod
    async def transition_tournament(
        db: AsyncSession,
        tournament_id: int,
        new_status: TournamentStatus
    ) -> Tournament:
        result = await db.execute(
            select(Tournament)
            .where(Tournament.id == tournament_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        tournament = result.scalar_one_or_none()
        if not tournament:
            raise NotFoundError.for_resource("Tournament", tournament_id)

        LifecycleStateMachine._check(LifecycleStateMachine.TOURNAMENT_TRANSITIONS, tournament.status, new_status)

        old_status = tournament.status
        tournament.status = new_status
        await db.commit()
        logger.info(f"Tournament {tournament_id}: {old_status.value} -> {new_status.value}")
        return tournament

    @staticmethod
    async def transition_round(
        db: AsyncSession,
        round_id: int,
        new_status: RoundStatus
    ) -> Round:
        """
        Advance a round one step. Non-terminal matches that are behind the
        round are carried forward with it.
        """
        result = await db.execute(
            select(Round)
            .where(Round.id == round_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        round_obj = result.scalar_one_or_none()
        if not round_obj:
            raise NotFoundError.for_resource("Round", round_id)

        LifecycleStateMachine._check(LifecycleStateMachine.ROUND_TRANSITIONS, round_obj.status, new_status)

        old_status = round_obj.status
        round_obj.status = new_status

        behind = LifecycleStateMachine.ROUND_CASCADE.get(new_status)
        if behind:
            target = MatchStatus(new_status.value)
            await db.execute(
                update(Match)
                .where(Match.round_id == round_id, Match.status.in_(behind))
                .values(status=target)
            )

        await db.commit()
        logger.info(f"Round {round_id}: {old_status.value} -> {new_status.value}")
        return round_obj

    @staticmethod
    async def transition_match(
        db: AsyncSession,
        match_id: int,
        new_status: MatchStatus
    ) -> Match:
        if new_status in DECIDED_MATCH_STATUSES:
            raise InvalidTransitionError(
                "Matches are decided by finalization only",
                details={"to": new_status.value},
            )

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
        LifecycleStateMachine._check(LifecycleStateMachine.MATCH_TRANSITIONS, match.status, new_status)

        old_status = match.status
        match.status = new_status
        await db.commit()
        logger.info(f"Match {match_id}: {old_status.value} -> {new_status.value}")
        return match
