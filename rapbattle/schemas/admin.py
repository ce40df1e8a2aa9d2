"""
rapbattle/schemas/admin.py
Pydantic schemas for administrative transitions and finalization
"""
from typing import Optional

from pydantic import BaseModel, Field

from rapbattle.orm.match import MatchStatus
from rapbattle.orm.round import RoundStatus
from rapbattle.orm.tournament import TournamentStatus


class TournamentTransitionRequest(BaseModel):
    new_status: TournamentStatus


class RoundTransitionRequest(BaseModel):
    new_status: RoundStatus


class MatchTransitionRequest(BaseModel):
    new_status: MatchStatus


class FinalizeMatchRequest(BaseModel):
    eliminate_losers: Optional[bool] = Field(
        default=None,
        description="Override ELIMINATE_BRACKET_LOSERS for this call"
    )


class FinalizeQualifierRequest(BaseModel):
    threshold: Optional[float] = Field(default=None, ge=0, le=100)
