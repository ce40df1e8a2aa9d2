"""
rapbattle/schemas/judging.py
Pydantic schemas for judge-facing endpoints
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from rapbattle.orm.judging import AssignmentStatus


class TrackScoreLine(BaseModel):
    """One judge's opinion on one match track."""
    model_config = ConfigDict(populate_by_name=True)

    match_track_id: int
    passed: Optional[bool] = Field(default=None, alias="pass")
    score: Optional[float] = None
    rubric: Optional[Dict[str, float]] = None

    def to_payload(self) -> Dict:
        return {
            "match_track_id": self.match_track_id,
            "pass": self.passed,
            "score": self.score,
            "rubric": self.rubric,
        }


class MatchScoreRequest(BaseModel):
    tracks: List[TrackScoreLine] = Field(..., min_length=1)
    comment: Optional[str] = Field(default=None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {
                "tracks": [
                    {"match_track_id": 11, "rubric": {"flow": 8, "lyrics": 7, "delivery": 9}},
                    {"match_track_id": 12, "rubric": {"flow": 6, "lyrics": 8, "delivery": 7}},
                ],
                "comment": "Tight battle, first verse carried it",
            }
        }


class SubmissionScoreRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    passed: Optional[bool] = Field(default=None, alias="pass")
    score: Optional[float] = None
    rubric: Optional[Dict[str, float]] = None
    comment: Optional[str] = Field(default=None, max_length=2000)


class AssignmentStatusRequest(BaseModel):
    status: AssignmentStatus
