"""
Round Overview

Read model of a single round for public and admin surfaces.
Qualifier rounds list submissions with judging tallies; head-to-head rounds
list matches with participants, tracks and averages. All results pass
through the visibility gate.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.core.time import resolve_now
from rapbattle.errors import NotFoundError
from rapbattle.orm.judging import Evaluation, EvaluationTargetType
from rapbattle.orm.leaderboard import MatchTrackScore
from rapbattle.orm.match import Match, MatchParticipant, MatchStatus, MatchTrack
from rapbattle.orm.round import Round
from rapbattle.orm.submission import Submission
from rapbattle.orm.tournament import Tournament, TournamentParticipant
from rapbattle.services.visibility import gate_value, gated_match_dict, gated_submission_dict, results_visible


async def _qualifier_entries(db: AsyncSession, round_obj: Round, visible: bool, now: datetime) -> List[Dict[str, Any]]:
    tallies = (
        select(
            Evaluation.target_id.label("submission_id"),
            func.sum(case((Evaluation.passed.is_(True), 1), else_=0)).label("pass_count"),
            func.sum(case((Evaluation.passed.is_(False), 1), else_=0)).label("fail_count"),
            func.count(Evaluation.id).label("judge_count"),
            func.sum(Evaluation.score).label("score_sum"),
        )
        .where(
            Evaluation.target_type == EvaluationTargetType.SUBMISSION,
            Evaluation.round_id == round_obj.id,
        )
        .group_by(Evaluation.target_id)
        .subquery()
    )

    result = await db.execute(
        select(
            Submission,
            TournamentParticipant.display_name,
            tallies.c.pass_count,
            tallies.c.fail_count,
            tallies.c.judge_count,
            tallies.c.score_sum,
        )
        .join(TournamentParticipant, TournamentParticipant.id == Submission.participant_id)
        .outerjoin(tallies, tallies.c.submission_id == Submission.id)
        .where(Submission.round_id == round_obj.id)
        .order_by(Submission.id)
    )

    entries = []
    for submission, display_name, pass_count, fail_count, judge_count, score_sum in result.all():
        data = gated_submission_dict(submission, round_obj, now)
        data.update({
            "display_name": display_name,
            "pass_count": gate_value(int(pass_count or 0), visible),
            "fail_count": gate_value(int(fail_count or 0), visible),
            "score_sum": gate_value(score_sum, visible),
            "judge_count": int(judge_count or 0),
        })
        entries.append(data)
    return entries


async def _match_entries(
    db: AsyncSession,
    round_obj: Round,
    visible: bool,
    now: datetime,
    match_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    query = select(Match).where(Match.round_id == round_obj.id)
    if match_id is not None:
        query = query.where(Match.id == match_id)
    match_result = await db.execute(
        query
        .order_by(Match.starts_at.is_(None).desc(), Match.starts_at.asc(), Match.id.asc())
    )
    matches = list(match_result.scalars().all())
    match_ids = [m.id for m in matches]
    if not match_ids:
        return []

    seat_result = await db.execute(
        select(MatchParticipant, TournamentParticipant.display_name)
        .join(TournamentParticipant, TournamentParticipant.id == MatchParticipant.participant_id)
        .where(MatchParticipant.match_id.in_(match_ids))
        .order_by(MatchParticipant.match_id, MatchParticipant.seed.is_(None), MatchParticipant.seed, MatchParticipant.id)
        .execution_options(populate_existing=True)
    )
    track_result = await db.execute(
        select(MatchTrack, MatchTrackScore.avg_total)
        .outerjoin(MatchTrackScore, MatchTrackScore.match_track_id == MatchTrack.id)
        .where(MatchTrack.match_id.in_(match_ids))
    )
    tracks = {
        (track.match_id, track.participant_id): (track, avg_total)
        for track, avg_total in track_result.all()
    }

    seats_by_match: Dict[int, List[Dict[str, Any]]] = {mid: [] for mid in match_ids}
    for seat, display_name in seat_result.all():
        track_data = None
        entry = tracks.get((seat.match_id, seat.participant_id))
        if entry:
            track, avg_total = entry
            track_data = track.to_dict()
            track_data["avg_total"] = gate_value(avg_total, visible)
        seats_by_match[seat.match_id].append({
            "participant_id": seat.participant_id,
            "display_name": display_name,
            "seed": seat.seed,
            "result_status": gate_value(seat.result_status.value if seat.result_status else None, visible),
            "track": track_data,
        })

    entries = []
    for match in matches:
        data = gated_match_dict(match, round_obj, now)
        data["participants"] = seats_by_match[match.id]
        entries.append(data)
    return entries


async def get_round_overview(db: AsyncSession, round_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = resolve_now(now)

    result = await db.execute(
        select(Round, Tournament)
        .join(Tournament, Tournament.id == Round.tournament_id)
        .where(Round.id == round_id)
    )
    row = result.one_or_none()
    if not row:
        raise NotFoundError.for_resource("Round", round_id)
    round_obj, tournament = row[0], row[1]
    visible = results_visible(round_obj, now)

    overview: Dict[str, Any] = {
        "tournament": {"id": tournament.id, "title": tournament.title, "status": tournament.status.value},
        "round": round_obj.to_dict(),
        "rubric": [c.to_dict() for c in round_obj.criteria],
        "results_visible": visible,
    }

    if round_obj.is_qualifier:
        submissions = await _qualifier_entries(db, round_obj, visible, now)
        overview["submissions"] = submissions
        overview["summary"] = {
            "submission_count": len(submissions),
            "judged_count": sum(1 for s in submissions if s["judge_count"]),
        }
        return overview

    matches = await _match_entries(db, round_obj, visible, now)
    overview["matches"] = matches
    overview["summary"] = {
        "match_count": len(matches),
        "decided_count": sum(
            1 for m in matches if m["status"] in (MatchStatus.FINISHED.value, MatchStatus.TIE.value)
        ),
        "track_count": sum(1 for m in matches for p in m["participants"] if p["track"]),
    }
    return overview


async def get_public_match(db: AsyncSession, match_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """One match with participants and tracks, results gated."""
    now = resolve_now(now)

    result = await db.execute(
        select(Round)
        .join(Match, Match.round_id == Round.id)
        .where(Match.id == match_id)
    )
    round_obj = result.scalar_one_or_none()
    if not round_obj:
        raise NotFoundError.for_resource("Match", match_id)

    visible = results_visible(round_obj, now)
    entries = await _match_entries(db, round_obj, visible, now, match_id=match_id)
    data = entries[0]
    data["round"] = round_obj.to_dict()
    return data


async def get_public_tournament(db: AsyncSession, tournament_id: int) -> Dict[str, Any]:
    result = await db.execute(select(Tournament).where(Tournament.id == tournament_id))
    tournament = result.scalar_one_or_none()
    if not tournament:
        raise NotFoundError.for_resource("Tournament", tournament_id)

    rounds = await db.execute(
        select(Round).where(Round.tournament_id == tournament_id).order_by(Round.number)
    )
    data = tournament.to_dict()
    data["rounds"] = [r.to_dict() for r in rounds.scalars().all()]
    return data
