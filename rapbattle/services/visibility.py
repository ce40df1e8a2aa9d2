"""
Result Visibility Gate

Read-time policy shared by every judge and public query path: winners and
aggregated scores are withheld until the round is finished or its judging
deadline has passed. Evaluated per request; never stored on the match.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from rapbattle.core.time import deadline_passed, resolve_now
from rapbattle.orm.match import Match
from rapbattle.orm.round import Round, RoundStatus


def results_visible(round_obj: Round, now: Optional[datetime] = None) -> bool:
    now = resolve_now(now)
    if round_obj.status == RoundStatus.FINISHED:
        return True
    return deadline_passed(round_obj.judging_deadline_at, now)


def gate_value(value: Any, visible: bool) -> Any:
    return value if visible else None


def gated_match_dict(match: Match, round_obj: Round, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Match serialization with the winner hidden until reveal."""
    visible = results_visible(round_obj, now)
    data = match.to_dict()
    data["winner_match_track_id"] = gate_value(match.winner_match_track_id, visible)
    data["results_visible"] = visible
    return data


def gated_submission_dict(submission, round_obj: Round, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Qualifier submission with its decided result hidden until reveal."""
    visible = results_visible(round_obj, now)
    data = submission.to_dict()
    data["result_status"] = gate_value(data["result_status"], visible)
    data["avg_total_score"] = gate_value(data["avg_total_score"], visible)
    return data
