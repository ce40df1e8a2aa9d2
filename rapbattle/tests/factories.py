"""
Row builders for tests. Each helper commits so ids and Python-side defaults are populated.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.orm.judging import AssignmentStatus, Evaluation, EvaluationTargetType, JudgeAssignment
from rapbattle.orm.match import Match, MatchParticipant, MatchStatus, MatchTrack
from rapbattle.orm.media import MediaAsset, MediaStatus
from rapbattle.orm.round import Round, RoundKind, RoundScoring, RoundStatus, RoundStrategy, RubricCriterion
from rapbattle.orm.submission import Submission, SubmissionStatus
from rapbattle.orm.tournament import Tournament, TournamentJudge, TournamentParticipant, TournamentStatus

NOW = datetime(2026, 3, 1, 12, 0, 0)
LATER = NOW + timedelta(days=2)
EARLIER = NOW - timedelta(days=2)

DEFAULT_CRITERIA = [
    {"key": "flow", "name": "Flow", "weight": 2.0, "min_value": 0, "max_value": 10},
    {"key": "lyrics", "name": "Lyrics", "weight": 1.0, "min_value": 0, "max_value": 10},
    {"key": "delivery", "name": "Delivery", "weight": 1.0, "min_value": 0, "max_value": 10},
]


async def _save(db: AsyncSession, *objects):
    db.add_all(objects)
    await db.commit()
    return objects[0] if len(objects) == 1 else objects


async def make_tournament(db: AsyncSession, title: str = "Spring Cypher", **kwargs) -> Tournament:
    kwargs.setdefault("status", TournamentStatus.ONGOING)
    return await _save(db, Tournament(title=title, **kwargs))


async def make_round(
    db: AsyncSession,
    tournament: Tournament,
    kind: RoundKind = RoundKind.BRACKET,
    scoring: RoundScoring = RoundScoring.RUBRIC,
    strategy: RoundStrategy = RoundStrategy.WEIGHTED,
    status: RoundStatus = RoundStatus.JUDGING,
    number: int = 1,
    judging_deadline_at: Optional[datetime] = LATER,
    submission_deadline_at: Optional[datetime] = None,
    criteria: Optional[List[Dict]] = None,
) -> Round:
    round_obj = Round(
        tournament_id=tournament.id,
        kind=kind,
        number=number,
        scoring=scoring,
        strategy=strategy,
        status=status,
        judging_deadline_at=judging_deadline_at,
        submission_deadline_at=submission_deadline_at,
    )
    if scoring == RoundScoring.RUBRIC:
        for position, spec in enumerate(criteria or DEFAULT_CRITERIA):
            round_obj.criteria.append(RubricCriterion(position=position, **spec))
    return await _save(db, round_obj)


async def make_participant(
    db: AsyncSession,
    tournament: Tournament,
    user_id: int,
    display_name: Optional[str] = None
) -> TournamentParticipant:
    return await _save(db, TournamentParticipant(
        tournament_id=tournament.id,
        user_id=user_id,
        display_name=display_name or f"MC {user_id}",
    ))


async def add_judges(db: AsyncSession, tournament: Tournament, judge_ids: Iterable[int]) -> None:
    db.add_all([TournamentJudge(tournament_id=tournament.id, user_id=jid) for jid in judge_ids])
    await db.commit()


async def make_media(
    db: AsyncSession,
    owner_id: int,
    status: MediaStatus = MediaStatus.READY
) -> MediaAsset:
    return await _save(db, MediaAsset(
        owner_id=owner_id,
        storage_key=f"audio/{owner_id}.mp3",
        mime="audio/mpeg",
        status=status,
    ))


async def make_match(
    db: AsyncSession,
    round_obj: Round,
    participants: List[TournamentParticipant],
    status: MatchStatus = MatchStatus.JUDGING,
    starts_at: Optional[datetime] = None,
) -> Match:
    match = await _save(db, Match(round_id=round_obj.id, status=status, starts_at=starts_at))
    db.add_all([
        MatchParticipant(match_id=match.id, participant_id=p.id, seed=seed)
        for seed, p in enumerate(participants, start=1)
    ])
    await db.commit()
    return match


async def make_track(
    db: AsyncSession,
    match: Match,
    participant: TournamentParticipant,
    media: Optional[MediaAsset] = None
) -> MatchTrack:
    if media is None:
        media = await make_media(db, participant.user_id)
    return await _save(db, MatchTrack(
        match_id=match.id,
        participant_id=participant.id,
        audio_id=media.id,
        submitted_at=EARLIER,
    ))


async def make_submission(
    db: AsyncSession,
    round_obj: Round,
    participant: TournamentParticipant,
    status: SubmissionStatus = SubmissionStatus.APPROVED,
) -> Submission:
    media = await make_media(db, participant.user_id)
    return await _save(db, Submission(
        round_id=round_obj.id,
        participant_id=participant.id,
        audio_id=media.id,
        status=status,
        submitted_at=EARLIER,
    ))


async def make_assignment(
    db: AsyncSession,
    judge_id: int,
    match: Match,
    status: AssignmentStatus = AssignmentStatus.ASSIGNED,
    assigned_at: datetime = EARLIER,
) -> JudgeAssignment:
    return await _save(db, JudgeAssignment(
        judge_id=judge_id,
        match_id=match.id,
        status=status,
        assigned_at=assigned_at,
    ))


async def make_match_evaluation_stub(db: AsyncSession, judge_id: int, match: Match) -> Evaluation:
    """A bare evaluation row, used where only its existence matters."""
    return await _save(db, Evaluation(
        judge_id=judge_id,
        target_type=EvaluationTargetType.MATCH,
        target_id=match.id,
        round_id=match.round_id,
        total_score=50.0,
    ))


def rubric(flow: float, lyrics: float, delivery: float) -> Dict[str, float]:
    return {"flow": flow, "lyrics": lyrics, "delivery": delivery}
