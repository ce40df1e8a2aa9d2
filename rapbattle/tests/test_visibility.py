"""
Result Visibility Tests

Winners and aggregated scores stay hidden on every read path until the
round is finished or its judging deadline has passed.
"""
import pytest

from rapbattle.errors import NotFoundError
from rapbattle.orm.round import Round, RoundKind, RoundScoring, RoundStatus
from rapbattle.services import evaluation_service, finalization_service, overview_service
from rapbattle.services.visibility import results_visible
from rapbattle.tests.factories import (
    LATER, NOW, add_judges, make_match, make_participant, make_round, make_submission,
    make_track, make_tournament, rubric,
)

JUDGE = 100
AFTER_DEADLINE = LATER.replace(year=LATER.year + 1)


class TestGate:

    def test_finished_round_always_visible(self):
        assert results_visible(Round(status=RoundStatus.FINISHED, judging_deadline_at=LATER), NOW)

    def test_deadline_boundary(self):
        round_obj = Round(status=RoundStatus.JUDGING, judging_deadline_at=NOW)
        assert not results_visible(round_obj, NOW)
        assert results_visible(round_obj, AFTER_DEADLINE)

    def test_no_deadline_waits_for_finish(self):
        assert not results_visible(Round(status=RoundStatus.JUDGING, judging_deadline_at=None), AFTER_DEADLINE)


async def _decided_match(db):
    tournament = await make_tournament(db)
    round_obj = await make_round(db, tournament)
    await add_judges(db, tournament, [JUDGE])
    a = await make_participant(db, tournament, user_id=1)
    b = await make_participant(db, tournament, user_id=2)
    match = await make_match(db, round_obj, [a, b])
    track_a = await make_track(db, match, a)
    track_b = await make_track(db, match, b)
    await evaluation_service.submit_match_evaluation(
        db,
        JUDGE,
        match.id,
        [
            {"match_track_id": track_a.id, "rubric": rubric(8, 6, 10)},
            {"match_track_id": track_b.id, "rubric": rubric(5, 5, 5)},
        ],
        now=NOW,
    )
    await finalization_service.finalize_match(db, match.id, now=NOW)
    return tournament, round_obj, match, track_a


class TestMatchReads:

    @pytest.mark.asyncio
    async def test_public_match_gated_until_deadline(self, db_session):
        _, _, match, track_a = await _decided_match(db_session)

        hidden = await overview_service.get_public_match(db_session, match.id, now=NOW)
        assert hidden["status"] == "finished"
        assert hidden["results_visible"] is False
        assert hidden["winner_match_track_id"] is None
        assert all(p["track"]["avg_total"] is None for p in hidden["participants"])
        assert all(p["result_status"] is None for p in hidden["participants"])

        shown = await overview_service.get_public_match(db_session, match.id, now=AFTER_DEADLINE)
        assert shown["results_visible"] is True
        assert shown["winner_match_track_id"] == track_a.id
        averages = {p["track"]["id"]: p["track"]["avg_total"] for p in shown["participants"]}
        assert averages[track_a.id] == pytest.approx(80.0)
        assert sorted(p["result_status"] or "" for p in shown["participants"]) == ["", "eliminated"]

    @pytest.mark.asyncio
    async def test_round_overview_summary(self, db_session):
        _, round_obj, match, _ = await _decided_match(db_session)

        overview = await overview_service.get_round_overview(db_session, round_obj.id, now=NOW)

        assert overview["results_visible"] is False
        assert [m["id"] for m in overview["matches"]] == [match.id]
        assert overview["summary"] == {"match_count": 1, "decided_count": 1, "track_count": 2}
        assert len(overview["rubric"]) == 3

    @pytest.mark.asyncio
    async def test_public_tournament_lists_rounds(self, db_session):
        tournament, round_obj, _, _ = await _decided_match(db_session)

        data = await overview_service.get_public_tournament(db_session, tournament.id)
        assert data["title"] == tournament.title
        assert [r["id"] for r in data["rounds"]] == [round_obj.id]

    @pytest.mark.asyncio
    async def test_unknown_ids(self, db_session):
        with pytest.raises(NotFoundError):
            await overview_service.get_public_match(db_session, 404, now=NOW)
        with pytest.raises(NotFoundError):
            await overview_service.get_round_overview(db_session, 404, now=NOW)


class TestQualifierReads:

    @pytest.mark.asyncio
    async def test_tallies_and_result_gated(self, db_session):
        tournament = await make_tournament(db_session)
        round_obj = await make_round(db_session, tournament, kind=RoundKind.QUALIFIER1, scoring=RoundScoring.PASS_FAIL)
        await add_judges(db_session, tournament, [JUDGE])
        participant = await make_participant(db_session, tournament, user_id=1)
        submission = await make_submission(db_session, round_obj, participant)
        await evaluation_service.submit_submission_evaluation(
            db_session, JUDGE, submission.id, passed=True, now=NOW
        )
        await finalization_service.finalize_qualifier_round(db_session, round_obj.id)

        hidden = await overview_service.get_round_overview(db_session, round_obj.id, now=NOW)
        entry = hidden["submissions"][0]
        assert entry["result_status"] is None
        assert entry["pass_count"] is None
        assert entry["judge_count"] == 1
        assert hidden["summary"] == {"submission_count": 1, "judged_count": 1}

        shown = await overview_service.get_round_overview(db_session, round_obj.id, now=AFTER_DEADLINE)
        entry = shown["submissions"][0]
        assert entry["result_status"] == "advanced"
        assert entry["pass_count"] == 1
        assert entry["fail_count"] == 0
        assert entry["avg_total_score"] == pytest.approx(100.0)
