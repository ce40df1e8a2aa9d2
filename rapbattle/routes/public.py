"""
Public API Routes.

Anonymous reads. Every winner and aggregated score goes through the
visibility gate.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rapbattle.database import get_db
from rapbattle.services import leaderboard_service, overview_service

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/tournaments/{tournament_id}")
async def get_tournament(tournament_id: int, db: AsyncSession = Depends(get_db)):
    tournament = await overview_service.get_public_tournament(db, tournament_id)
    return {"success": True, "tournament": tournament}


@router.get("/rounds/{round_id}/overview")
async def get_round_overview(round_id: int, db: AsyncSession = Depends(get_db)):
    overview = await overview_service.get_round_overview(db, round_id)
    return {"success": True, **overview}


@router.get("/matches/{match_id}")
async def get_match(match_id: int, db: AsyncSession = Depends(get_db)):
    match = await overview_service.get_public_match(db, match_id)
    return {"success": True, "match": match}


@router.get("/matches/{match_id}/tracks")
async def get_match_tracks(match_id: int, db: AsyncSession = Depends(get_db)):
    match = await overview_service.get_public_match(db, match_id)
    tracks = [p["track"] for p in match["participants"] if p["track"]]
    return {"success": True, "match_id": match_id, "tracks": tracks}


@router.get("/tournaments/{tournament_id}/leaderboard")
async def get_leaderboard(tournament_id: int, db: AsyncSession = Depends(get_db)):
    await overview_service.get_public_tournament(db, tournament_id)
    standings = await leaderboard_service.get_tournament_leaderboard(db, tournament_id)
    return {"success": True, "tournament_id": tournament_id, "leaderboard": standings}
