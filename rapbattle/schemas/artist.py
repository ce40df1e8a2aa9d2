"""
rapbattle/schemas/artist.py
Pydantic schemas for artist uploads
"""
from typing import Optional

from pydantic import BaseModel, Field


class SubmissionRequest(BaseModel):
    audio_id: int
    lyrics: Optional[str] = Field(default=None, max_length=20000)


class MatchTrackRequest(BaseModel):
    audio_id: int
    lyrics: Optional[str] = Field(default=None, max_length=20000)
